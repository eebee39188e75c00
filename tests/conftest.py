import os
import sys
import tempfile
import warnings
from pathlib import Path

# Add src/ to sys.path for imports when running without an editable install
sys.path.insert(0, str(Path(__file__).resolve().parent.parent / "src"))

# Ensure required environment variables for the config singletons
os.environ.setdefault("DISCORD_API_TOKEN", "test-token")
os.environ.setdefault("ALLOWED_GUILDS", "123")
os.environ.setdefault("PATREON_CLIENT_ID", "test-client")
os.environ.setdefault("PATREON_CLIENT_SECRET", "test-secret")
os.environ.setdefault("PATREON_CAMPAIGN_ID", "42")
os.environ.setdefault("PATREON_TIERS", "10:Gold")
os.environ.setdefault("PRODUCTION_MODE", "true")
os.environ["SUBSCRIPTIONS_CONFIG"] = str(Path(tempfile.gettempdir()) / "subscriptions-test-missing.toml")
os.environ.setdefault(
    "SUBSCRIPTIONS_DB_PATH",
    str(Path(tempfile.mkdtemp(prefix="subscriptions-tests-")) / "subscriptions.db"),
)

# Silence deprecation warnings surfaced from third-party dependencies during tests
warnings.filterwarnings(
    "ignore", category=DeprecationWarning, module=r"^discord\\.player$"
)
warnings.filterwarnings("ignore", "'audioop' is deprecated", DeprecationWarning)


def pytest_configure(config):
    warnings.filterwarnings(
        "ignore", category=DeprecationWarning, module=r"^discord\\.player$"
    )
    warnings.filterwarnings("ignore", "'audioop' is deprecated", DeprecationWarning)
