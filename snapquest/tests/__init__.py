"""SnapQuest test suite."""
