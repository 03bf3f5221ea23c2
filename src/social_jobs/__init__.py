"""Background worker that turns queued social jobs into generated content drafts."""

__version__ = "0.1.0"
