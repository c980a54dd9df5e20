"""Git-native deployment workflow: plan, deploy, delete, diff and log."""

__version__ = "0.4.0"
