"""ReportTuner: feedback-driven fine-tuning for forensic report sections."""

__version__ = "0.1.0"
