"""GitHub 조직 활동 리포트."""

__version__ = "0.1.0"
