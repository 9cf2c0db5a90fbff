"""Guided offer-building workflow: session, guidance sub-flow and controller."""

from vaultflow.workflow.controller import NextAction, WorkflowController
from vaultflow.workflow.guidance import GuidanceCheckSubflow, GuidanceState
from vaultflow.workflow.session import WorkflowSession, new_session

__all__ = [
    "GuidanceCheckSubflow",
    "GuidanceState",
    "NextAction",
    "WorkflowController",
    "WorkflowSession",
    "new_session",
]
