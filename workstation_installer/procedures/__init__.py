from .base import Procedure, ProcedureCtx, run_package_manager
from .ide_two_phase import IdeState, IdeTwoPhaseProcedure
from .version_manager import VersionManagerProcedure

__all__ = [
    "Procedure",
    "ProcedureCtx",
    "run_package_manager",
    "IdeState",
    "IdeTwoPhaseProcedure",
    "VersionManagerProcedure",
]
