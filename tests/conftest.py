"""Pytest configuration and fixtures."""
import os
from datetime import date, datetime
from types import SimpleNamespace

import pytest
from hypothesis import settings

from bindcaptain.models import CheckResult
from bindcaptain.services.logger_service import LoggerService
from bindcaptain.services.record_manager import RecordManager
from bindcaptain.services.validator import Validator
from bindcaptain.services.zone_repository import ZoneRepository

# Hypothesis profiles
settings.register_profile("ci", max_examples=100)
settings.register_profile("dev", max_examples=10)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "ci"))


TODAY = date(2025, 6, 1)

NAMED_CONF = """options {
    directory "/var/named";
};

zone "." IN {
    type hint;
    file "named.ca";
};

zone "localhost" IN {
    type master;
    file "named.localhost";
};

zone "example.com" IN {
    type master;
    file "example.com/example.com.db";
};

zone "example.org" IN {
    type master;
    file "/var/named/example.org.db";
};

zone "0.0.10.in-addr.arpa" IN {
    type master;
    file "10.0.0.rev";
};
"""

EXAMPLE_COM_ZONE = """$TTL 86400
@       IN      SOA     ns1.example.com. admin.example.com. (
                        2025053102      ; Serial
                        3600            ; Refresh
                        1800            ; Retry
                        604800          ; Expire
                        86400 )         ; Minimum TTL

; Name Servers
@       IN      NS      ns1.example.com.

; A Records
ns1     IN      A       10.0.0.1
www     IN      A       10.0.0.2
        IN      TXT     "web server"

; CNAME Records
mail    IN      CNAME   www

; TXT Records
@       IN      TXT     "v=spf1 mx -all"
_dmarc  IN      TXT     "v=DMARC1; p=none"
"""

EXAMPLE_ORG_ZONE = """$TTL 3600
@ IN SOA ns1.example.org. hostmaster.example.org. ( 2025060105 3600 1800 604800 3600 )
@ IN NS ns1.example.org.
ns1 IN A 192.0.2.1
"""


class FakeValidator(Validator):
    """In-memory validator recording every call."""

    def __init__(self, zone_ok=True, config_ok=True, reload_ok=True, available=True):
        self.zone_ok = zone_ok
        self.config_ok = config_ok
        self.reload_ok = reload_ok
        self.available = available
        self.calls = []
        self.executed = []
        self.execute_output = ""

    def ensure_available(self):
        from bindcaptain.services.validator import DependencyUnavailableError
        self.calls.append(("ensure_available",))
        if not self.available:
            raise DependencyUnavailableError("BIND tools not found: named-checkzone")

    def check_config(self, path):
        self.calls.append(("check_config", path))
        return CheckResult(success=self.config_ok, output="" if self.config_ok else "config error")

    def check_zone(self, name, path):
        self.calls.append(("check_zone", name, path))
        if self.zone_ok:
            return CheckResult(success=True, output=f"zone {name}/IN: loaded serial\nOK\n")
        return CheckResult(success=False, output=f"zone {name}/IN: bad record\n")

    def reload(self):
        self.calls.append(("reload",))
        return CheckResult(success=self.reload_ok, output="" if self.reload_ok else "rndc: connect failed")

    def execute(self, args):
        self.executed.append(list(args))
        return CheckResult(success=True, output=self.execute_output)

    def called(self, name):
        return [call for call in self.calls if call[0] == name]


def build_zone_tree(root):
    """Write named.conf and two zones below ``root``."""
    bind_dir = os.path.join(root, "named")
    os.makedirs(os.path.join(bind_dir, "example.com"))
    named_conf = os.path.join(bind_dir, "named.conf")
    with open(named_conf, "w") as f:
        f.write(NAMED_CONF)

    com_zone = os.path.join(bind_dir, "example.com", "example.com.db")
    with open(com_zone, "w", newline="") as f:
        f.write(EXAMPLE_COM_ZONE)
    org_zone = os.path.join(bind_dir, "example.org.db")
    with open(org_zone, "w", newline="") as f:
        f.write(EXAMPLE_ORG_ZONE)

    return SimpleNamespace(
        root=str(root),
        bind_dir=bind_dir,
        named_conf=named_conf,
        backup_dir=os.path.join(root, "backups"),
        log_file=os.path.join(root, "logs", "bind_manager.log"),
        com_zone=com_zone,
        org_zone=org_zone,
    )


def build_manager(tree, validator=None, clock=None, **kwargs):
    """Wire a RecordManager over a zone tree."""
    repository = ZoneRepository(
        bind_dir=tree.bind_dir,
        backup_dir=tree.backup_dir,
        lock_timeout=1,
        clock=clock or (lambda: datetime(2025, 6, 1, 12, 0, 0)),
    )
    logger_service = LoggerService(action_log_path=tree.log_file)
    return RecordManager(
        repository=repository,
        validator=validator or FakeValidator(),
        logger_service=logger_service,
        named_conf=tree.named_conf,
        today=lambda: TODAY,
        **kwargs
    )


def read_text(path):
    with open(path, newline="") as f:
        return f.read()


@pytest.fixture
def zone_tree(tmp_path):
    """Zone root with named.conf, example.com (subdirectory) and example.org (flat)."""
    return build_zone_tree(str(tmp_path))


@pytest.fixture
def validator():
    return FakeValidator()


@pytest.fixture
def manager(zone_tree, validator):
    return build_manager(zone_tree, validator)


@pytest.fixture
def mock_env_vars(monkeypatch, zone_tree):
    """Point configuration at the zone tree in local mode."""
    monkeypatch.setenv("BINDCAPTAIN_MODE", "local")
    monkeypatch.setenv("BINDCAPTAIN_BIND_DIR", zone_tree.bind_dir)
    monkeypatch.setenv("BINDCAPTAIN_NAMED_CONF", zone_tree.named_conf)
    monkeypatch.setenv("BINDCAPTAIN_BACKUP_DIR", zone_tree.backup_dir)
    monkeypatch.setenv("BINDCAPTAIN_LOG_FILE", zone_tree.log_file)
    return zone_tree
