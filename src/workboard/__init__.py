"""Workboard - Project workflow and Kanban collaboration core.

This package provides the approval-gated project lifecycle state machine,
the Kanban board ordering engine, auto-provisioning of project boards, and
the durable notification fan-out shared by both.
"""

__version__ = "0.1.0"
