"""Module entrypoint.

Allows:
    python -m kube_log_mux -- <pod-query>
"""

from __future__ import annotations

from kube_log_mux.cli import main

if __name__ == "__main__":
    main()
