"""Exception hierarchy shared by the control panel components."""

from __future__ import annotations


class ChatPanelError(Exception):
    """Base class for all chat-panel errors."""


class BackendUnavailable(ChatPanelError):
    """A collaborator (messaging client, AI model) cannot serve the request."""


class AIUnavailable(BackendUnavailable):
    """No AI backend is configured."""


class ReportTimeout(BackendUnavailable):
    """Report generation exceeded its time ceiling."""


class ValidationError(ChatPanelError):
    """Request rejected before any side effect took place."""
