import os
import pathlib
import sys

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Must be set before core.database builds its engine
os.environ.setdefault("DATABASE_URL", f"sqlite:///{ROOT / 'test_bom_inventory.db'}")
