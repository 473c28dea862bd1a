"""
Domain models for the orchestrator.

All models are re-exported here for convenient access:

    from buildrig.core.models import Target, TargetGraph, Action, Receipt, BuildFile
"""

from buildrig.core.models.action import Action, Receipt
from buildrig.core.models.build import (
    ActionDecl,
    BuildFile,
    GlobAxis,
    ParameterDecl,
    PreconditionDecl,
    TargetDecl,
    ToolchainDecl,
)
from buildrig.core.models.target import (
    ActionRef,
    AxisSource,
    FailurePolicy,
    Target,
    TargetGraph,
    TargetState,
)

__all__ = [
    # action.py
    "Action",
    "ActionDecl",
    "ActionRef",
    "AxisSource",
    # build.py
    "BuildFile",
    "FailurePolicy",
    "GlobAxis",
    "ParameterDecl",
    "PreconditionDecl",
    "Receipt",
    # target.py
    "Target",
    "TargetDecl",
    "TargetGraph",
    "TargetState",
    "ToolchainDecl",
]
