import os
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Read by config at import time; keeps the module-level app off the real providers and disk
os.environ.setdefault("CHAT_PROVIDER", "canned")
os.environ.setdefault("OPENAI_API_KEY", "")
os.environ.setdefault("ELEVENLABS_API_KEY", "")
os.environ.setdefault("STORAGE_ROOT", str(Path(tempfile.gettempdir()) / "folio-test-storage"))
