"""
Configuration manager for provider API keys.

Stores encrypted keys in ~/.screenrelay/config/ for the CLI and server
hosts. The routing layer never writes credentials anywhere; it only
receives them as arguments to initialize.
"""

import getpass
import json
import os
from pathlib import Path

from cryptography.fernet import Fernet, InvalidToken
from rich.console import Console
from rich.table import Table

from screenrelay.models.session import Provider

console = Console()

# API key names per provider
PROVIDER_KEYS: dict[Provider, str] = {
    Provider.STREAMING_REALTIME: "GEMINI_API_KEY",
    Provider.CHAT_COMPLETION: "OPENROUTER_API_KEY",
    Provider.PLACEHOLDER_THIRD: "GROK_API_KEY",
}

KNOWN_KEYS = {
    "GEMINI_API_KEY": "Google Gemini (realtime streaming)",
    "OPENROUTER_API_KEY": "OpenRouter (chat completions)",
    "GROK_API_KEY": "Grok (session API)",
}


class ConfigManager:
    """
    Manages provider API keys.

    Keys are stored encrypted and environment variables take precedence
    over stored values.

    Directory structure:
        ~/.screenrelay/config/.key     # Encryption key
        ~/.screenrelay/config/keys.enc # Encrypted API keys
    """

    def __init__(self, base_dir: Path | None = None):
        """
        Initialize the config manager.

        Args:
            base_dir: Base directory for config storage.
                      Defaults to ~/.screenrelay/config/
        """
        if base_dir is None:
            base_dir = Path.home() / ".screenrelay" / "config"

        self.base_dir = base_dir
        self.base_dir.mkdir(parents=True, exist_ok=True)
        self._fernet = self._get_fernet()
        self._cache: dict[str, str] | None = None

    def _get_fernet(self) -> Fernet:
        """Get or create the encryption key."""
        key_file = self.base_dir / ".key"

        if key_file.exists():
            key = key_file.read_bytes()
        else:
            key = Fernet.generate_key()
            key_file.write_bytes(key)
            try:
                key_file.chmod(0o600)
            except OSError:
                pass

        return Fernet(key)

    def _keys_path(self) -> Path:
        return self.base_dir / "keys.enc"

    def _load_keys(self) -> dict[str, str]:
        """Load and decrypt stored keys."""
        if self._cache is not None:
            return self._cache

        path = self._keys_path()
        if not path.exists():
            self._cache = {}
            return {}

        try:
            decrypted = self._fernet.decrypt(path.read_bytes())
            keys = json.loads(decrypted)
            self._cache = keys
            return keys
        except (InvalidToken, json.JSONDecodeError):
            self._cache = {}
            return {}

    def _save_keys(self, keys: dict[str, str]) -> None:
        """Encrypt and save keys."""
        encrypted = self._fernet.encrypt(json.dumps(keys).encode())
        path = self._keys_path()
        path.write_bytes(encrypted)
        try:
            path.chmod(0o600)
        except OSError:
            pass
        self._cache = keys

    def get(self, name: str) -> str | None:
        """Get a key value. Environment first, then stored config."""
        if name in os.environ:
            return os.environ[name]
        return self._load_keys().get(name)

    def set(self, name: str, value: str) -> None:
        keys = self._load_keys()
        keys[name] = value
        self._save_keys(keys)

    def delete(self, name: str) -> bool:
        """Delete a stored key. Returns True if it existed."""
        keys = self._load_keys()
        if name in keys:
            del keys[name]
            self._save_keys(keys)
            return True
        return False

    def list_keys(self) -> list[str]:
        return list(self._load_keys().keys())

    def api_key_for(self, provider: Provider) -> str | None:
        """The API key configured for a provider, if any."""
        return self.get(PROVIDER_KEYS[provider])

    def prompt_and_set(self, name: str) -> bool:
        """Read ``name`` with hidden input and store it. Empty input stores nothing."""
        value = getpass.getpass(f"{name} ({KNOWN_KEYS.get(name, 'API key')}): ")
        if not value:
            return False
        self.set(name, value)
        return True

    def show_status(self) -> None:
        """Display which keys are configured (never their values)."""
        keys = self._load_keys()

        table = Table(title="API Keys")
        table.add_column("Key", style="cyan")
        table.add_column("Provider")
        table.add_column("Status")

        for name in sorted({*KNOWN_KEYS, *keys}):
            if name in os.environ:
                status = "[yellow]env[/yellow]"
            elif name in keys:
                status = "[green]stored[/green]"
            else:
                status = "[dim]missing[/dim]"
            table.add_row(name, KNOWN_KEYS.get(name, "Custom"), status)

        console.print(table)
        console.print(f"[dim]Config location: {self.base_dir}[/dim]")
