import sys
from pathlib import Path

# Make repository root importable so 'config' and 'probe' resolve
# without installing the package first.
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))
