import os
import tempfile

os.environ.setdefault("EXPENSES_DATA_DIR", tempfile.mkdtemp(prefix="household-"))
os.environ.setdefault("EXPENSES_LOG_LEVEL", "WARNING")
