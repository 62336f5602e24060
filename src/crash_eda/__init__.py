"""crash_eda: road-crash spreadsheet の探索的集計パイプライン."""

__version__ = "0.1.0"
