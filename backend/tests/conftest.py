import os
import sys
import tempfile

# The app modules build their stores at import time, so point them at a
# throwaway database before any test module imports them.
_db_dir = tempfile.mkdtemp(prefix="dispatch-tests-")
os.environ["DISPATCH_DB_PATH"] = os.path.join(_db_dir, "dispatch.sqlite3")
os.environ["SEED_PROVIDERS"] = "false"

sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))
