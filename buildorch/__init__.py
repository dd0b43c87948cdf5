"""
buildorch - Package build orchestrator

Validates a requested build of local packages against a dependency
snapshot, hands it to a planner and executor, and answers queries about
build information.
"""

__version__ = "0.1.0"


__all__ = ["Config", "load_config", "BuildEnv", "Collaborators", "run_build", "build_local_targets"]

from .config import Config, load_config
from .build import BuildEnv, Collaborators, build_local_targets, run_build
