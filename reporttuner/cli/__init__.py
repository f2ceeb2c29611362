"""Command-line tools for ReportTuner.

- ``python -m reporttuner.cli run-cycle``: run one retraining cycle now.
- ``python -m reporttuner.cli reconcile``: poll the pending fine-tune job.
- ``python -m reporttuner.cli status``: show qualifying feedback, the
  registry entry, and recent cycles.
- ``python -m reporttuner.cli serve``: start the API server.

Commands build the same component graph as the API server, so an
operator-triggered cycle shares the retraining lease with the server's
background cycles.
"""
