"""Proposal Workflow Engine - CRM proposal authoring and review."""

__version__ = "1.0.0"
