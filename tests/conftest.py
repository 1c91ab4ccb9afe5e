from __future__ import annotations

import os

# Tests never reach a real Postgres; keep runtime mode explicit.
os.environ.setdefault("VAULT_RUNTIME_ENVIRONMENT", "test")
