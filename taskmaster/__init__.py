"""TaskMaster: task list API with JWT sessions."""

__version__ = "1.0.0"
