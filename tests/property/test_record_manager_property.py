"""Property tests for record operations.

Property 7: Conflict Policy
For any create whose name already holds conflicting data, FAIL SHALL raise
without touching the zone, ABORT SHALL return an aborted result without
touching the zone, and OVERWRITE SHALL replace the existing records.

Property 8: Delete Semantics
For any delete, every record of the name (or only those of the requested
type) SHALL be removed, the SOA record never, and nothing SHALL change
unless the delete is confirmed.

Property 9: Committed Change Sequence
For any successful change, the serial SHALL increase, a backup SHALL be
taken, the zone SHALL be checked and BIND reloaded, in that order.
"""
import os

import pytest
from hypothesis import given, strategies as st, settings, HealthCheck

from bindcaptain.services.record_manager import (
    ConflictPolicy,
    RecordConflictError,
    RecordNotFoundError,
    UnknownDomainError,
    ValidationError,
)
from bindcaptain.services.zone_parser import ZoneParser
from bindcaptain.services.zone_repository import ZoneFileNotFoundError

from conftest import FakeValidator, build_manager, read_text


def parse(path, origin="example.com"):
    return ZoneParser(origin).parse(read_text(path))


class TestCreateARecord:
    """Property 9: Committed Change Sequence (A records)"""

    def test_create_scenario(self, zone_tree, manager, validator):
        """Creating api.example.com SHALL add the record, bump the serial and reload.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        result = manager.create_a_record("api", "example.com", "10.0.0.9")

        assert result.is_success
        assert result.message == "Created A record: api.example.com -> 10.0.0.9"
        assert result.old_serial == 2025053102
        assert result.new_serial == 2025060101

        zone = parse(zone_tree.com_zone)
        records = zone.find("api")
        assert [(r.record.record_type, r.record.value) for r in records] == [("A", "10.0.0.9")]
        assert zone.serial == 2025060101

        names = [call[0] for call in validator.calls]
        assert names == ["ensure_available", "check_zone", "reload"]
        assert validator.called("check_zone")[0][1:] == ("example.com", zone_tree.com_zone)

    def test_backup_is_pre_change_content(self, zone_tree, manager):
        """The backup SHALL hold the zone as it was before the change.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        before = read_text(zone_tree.com_zone)

        result = manager.create_a_record("api", "example.com", "10.0.0.9")

        assert read_text(result.backup_path) == before
        assert manager.list_backups("example.com") == [result.backup_path]

    def test_a_record_lands_in_a_section(self, zone_tree, manager):
        """A new A record SHALL be placed before the CNAME section.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        manager.create_a_record("api", "example.com", "10.0.0.9")

        lines = read_text(zone_tree.com_zone).splitlines()
        api = next(i for i, line in enumerate(lines) if line.startswith("api "))
        cname_marker = lines.index("; CNAME Records")
        www = next(i for i, line in enumerate(lines) if line.startswith("www "))
        assert www < api < cname_marker

    def test_explicit_ttl_written(self, zone_tree, manager):
        """A supplied TTL SHALL be written on the record line.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        manager.create_a_record("api", "example.com", "10.0.0.9", ttl=300)

        record = parse(zone_tree.com_zone).find("api")[0].record
        assert record.ttl == "300"

    def test_zone_without_markers_appends(self, zone_tree):
        """Without section markers the record SHALL be appended at the end.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        manager = build_manager(zone_tree)

        manager.create_a_record("api", "example.org", "192.0.2.9")

        text = read_text(zone_tree.org_zone)
        assert text.splitlines()[-1].split() == ["api", "IN", "A", "192.0.2.9"]
        assert parse(zone_tree.org_zone, "example.org").serial == 2025060106

    def test_same_day_changes_increment(self, zone_tree, manager):
        """Two changes on one day SHALL produce consecutive serials.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        first = manager.create_a_record("api", "example.com", "10.0.0.9")
        second = manager.create_a_record("db", "example.com", "10.0.0.10")

        assert first.new_serial == 2025060101
        assert second.new_serial == 2025060102
        assert len(manager.list_backups("example.com")) == 2

    @pytest.mark.parametrize("hostname,ip", [
        ("bad host", "10.0.0.1"),
        ("-api", "10.0.0.1"),
        ("api", "10.0.0.256"),
        ("api", "10.0.0"),
    ])
    def test_invalid_input_changes_nothing(self, zone_tree, manager, validator, hostname, ip):
        """Malformed input SHALL be rejected before any file is touched.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        before = read_text(zone_tree.com_zone)

        with pytest.raises(ValidationError):
            manager.create_a_record(hostname, "example.com", ip)

        assert read_text(zone_tree.com_zone) == before
        assert validator.calls == []

    def test_invalid_ttl_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.create_a_record("api", "example.com", "10.0.0.9", ttl=-1)

    def test_unknown_domain_lists_available(self, manager):
        """An undeclared domain SHALL be rejected with the available domains.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        with pytest.raises(UnknownDomainError) as excinfo:
            manager.create_a_record("api", "example.net", "10.0.0.9")

        assert "Invalid domain: example.net" in str(excinfo.value)
        assert "example.com" in str(excinfo.value)
        assert "example.org" in str(excinfo.value)

    def test_reverse_zone_is_not_managed(self, manager):
        with pytest.raises(UnknownDomainError):
            manager.create_a_record("api", "0.0.10.in-addr.arpa", "10.0.0.9")

    def test_missing_zone_file(self, zone_tree, manager):
        """A declared zone without a file SHALL raise ZoneFileNotFoundError.

        Feature: bindcaptain, Property 9: Committed Change Sequence
        """
        os.unlink(zone_tree.org_zone)

        with pytest.raises(ZoneFileNotFoundError):
            manager.create_a_record("api", "example.org", "192.0.2.9")


class TestConflictPolicy:
    """Property 7: Conflict Policy"""

    @given(policy=st.sampled_from(list(ConflictPolicy)))
    @settings(max_examples=10, deadline=None,
              suppress_health_check=[HealthCheck.function_scoped_fixture])
    def test_policy_outcomes(self, tmp_path_factory, policy):
        """For each policy the existing www record SHALL be kept or replaced accordingly.

        Feature: bindcaptain, Property 7: Conflict Policy
        """
        from conftest import build_zone_tree
        tree = build_zone_tree(str(tmp_path_factory.mktemp("zones")))
        manager = build_manager(tree)
        before = read_text(tree.com_zone)

        if policy is ConflictPolicy.FAIL:
            with pytest.raises(RecordConflictError):
                manager.create_a_record("www", "example.com", "10.0.0.99", on_conflict=policy)
            assert read_text(tree.com_zone) == before
            return

        result = manager.create_a_record("www", "example.com", "10.0.0.99", on_conflict=policy)

        if policy is ConflictPolicy.ABORT:
            assert result.is_aborted
            assert any("10.0.0.2" in line for line in result.lines)
            assert read_text(tree.com_zone) == before
        else:
            assert result.is_success
            zone = parse(tree.com_zone)
            values = [e.record.value for e in zone.find("www", ["A"])]
            assert values == ["10.0.0.99"]
            # The inherited TXT record keeps its owner
            assert [e.record.value for e in zone.find("www", ["TXT"])] == ['"web server"']

    def test_default_policy_from_constructor(self, zone_tree):
        """Without an explicit policy the manager's default SHALL apply.

        Feature: bindcaptain, Property 7: Conflict Policy
        """
        manager = build_manager(zone_tree, conflict_policy=ConflictPolicy.ABORT)

        result = manager.create_a_record("www", "example.com", "10.0.0.99")

        assert result.is_aborted

    def test_policy_accepts_strings(self, manager):
        result = manager.create_a_record("www", "example.com", "10.0.0.99", on_conflict="abort")
        assert result.is_aborted

        with pytest.raises(ValidationError):
            manager.create_a_record("www", "example.com", "10.0.0.99", on_conflict="prompt")

    def test_a_conflicts_with_cname(self, manager):
        """An A record SHALL conflict with an existing CNAME of the same name.

        Feature: bindcaptain, Property 7: Conflict Policy
        """
        with pytest.raises(RecordConflictError):
            manager.create_a_record("mail", "example.com", "10.0.0.5")

    def test_cname_conflicts_with_any_type(self, manager):
        """A CNAME SHALL conflict with any existing record of the name.

        Feature: bindcaptain, Property 7: Conflict Policy
        """
        with pytest.raises(RecordConflictError):
            manager.create_cname("ns1", "example.com", "www")

    def test_cname_overwrite_replaces_all_records(self, zone_tree, manager):
        manager.create_cname("www", "example.com", "ns1", on_conflict="overwrite")

        zone = parse(zone_tree.com_zone)
        assert [e.record.record_type for e in zone.find("www")] == ["CNAME"]

    def test_txt_never_conflicts(self, zone_tree, manager):
        """Several TXT records SHALL be allowed on one name.

        Feature: bindcaptain, Property 7: Conflict Policy
        """
        manager.create_txt("@", "example.com", "google-site-verification=abc")

        zone = parse(zone_tree.com_zone)
        values = [e.record.value for e in zone.find("@", ["TXT"])]
        assert values == ['"v=spf1 mx -all"', '"google-site-verification=abc"']


class TestCnameAndTxt:
    """Placement and rendering of CNAME and TXT records."""

    def test_cname_after_marker(self, zone_tree, manager):
        result = manager.create_cname("blog", "example.com", "www")

        assert result.is_success
        lines = read_text(zone_tree.com_zone).splitlines()
        marker = lines.index("; CNAME Records")
        assert lines[marker + 1].split() == ["blog", "IN", "CNAME", "www"]

    def test_cname_without_marker_appends(self, zone_tree, manager):
        manager.create_cname("blog", "example.org", "ns1")

        assert read_text(zone_tree.org_zone).splitlines()[-1].split() == ["blog", "IN", "CNAME", "ns1"]

    def test_txt_appended_at_end_quoted(self, zone_tree, manager):
        manager.create_txt("_acme", "example.com", 'token "x"; y')

        last = read_text(zone_tree.com_zone).splitlines()[-1]
        assert last.startswith("_acme ")
        assert last.endswith('"token \\"x\\"; y"')
        record = parse(zone_tree.com_zone).find("_acme")[0].record
        assert record.record_type == "TXT"

    def test_multiline_txt_rejected(self, manager):
        with pytest.raises(ValidationError):
            manager.create_txt("x", "example.com", "line1\nline2")


class TestDeleteSemantics:
    """Property 8: Delete Semantics"""

    def test_delete_all_types(self, zone_tree, manager):
        """Deleting without a type SHALL remove every record of the name.

        Feature: bindcaptain, Property 8: Delete Semantics
        """
        result = manager.delete_record("www", "example.com", confirm=True)

        assert result.is_success
        assert result.message == "Deleted record: www from example.com"
        assert len(result.lines) == 2
        zone = parse(zone_tree.com_zone)
        assert zone.find("www") == []
        # The record following www keeps its own owner
        assert [e.record.record_type for e in zone.find("ns1")] == ["A"]

    def test_delete_with_type_filter(self, zone_tree, manager):
        """Deleting with a type SHALL leave records of other types.

        Feature: bindcaptain, Property 8: Delete Semantics
        """
        manager.delete_record("www", "example.com", record_type="a", confirm=True)

        zone = parse(zone_tree.com_zone)
        assert [e.record.record_type for e in zone.find("www")] == ["TXT"]
        assert zone.find("ns1", ["TXT"]) == []

    def test_unconfirmed_delete_is_dry_run(self, zone_tree, manager, validator):
        """Without confirmation the delete SHALL list matches and change nothing.

        Feature: bindcaptain, Property 8: Delete Semantics
        """
        before = read_text(zone_tree.com_zone)

        result = manager.delete_record("mail", "example.com")

        assert result.is_aborted
        assert result.lines == ["mail    IN      CNAME   www"]
        assert read_text(zone_tree.com_zone) == before
        assert validator.calls == []

    def test_soa_never_deleted(self, zone_tree, manager):
        """Deleting the apex SHALL keep the SOA record.

        Feature: bindcaptain, Property 8: Delete Semantics
        """
        manager.delete_record("@", "example.com", confirm=True)

        zone = parse(zone_tree.com_zone)
        assert [e.record.record_type for e in zone.find("@")] == ["SOA"]
        assert zone.serial == 2025060101

    def test_delete_missing_name(self, manager):
        with pytest.raises(RecordNotFoundError):
            manager.delete_record("nothere", "example.com", confirm=True)

    def test_delete_invalid_type(self, manager):
        with pytest.raises(ValidationError):
            manager.delete_record("www", "example.com", record_type="BOGUS", confirm=True)

    def test_fully_qualified_owner_matches(self, zone_tree, manager):
        """Records written with a fully qualified owner SHALL match the relative name.

        Feature: bindcaptain, Property 8: Delete Semantics
        """
        with open(zone_tree.com_zone, "a") as f:
            f.write("ftp.example.com. IN A 10.0.0.7\n")

        manager.delete_record("ftp", "example.com", confirm=True)

        assert "ftp" not in read_text(zone_tree.com_zone)


class TestListing:
    """Listing records and backups."""

    def test_list_all_domains(self, manager):
        listing = manager.list_records()

        assert list(listing) == ["example.com", "example.org"]
        assert len(listing["example.org"]) == 3

    def test_list_filtered_by_type(self, manager):
        listing = manager.list_records("example.com", "cname")

        assert [(r.owner, r.value) for r in listing["example.com"]] == [("mail", "www")]

    def test_list_skips_missing_zone_files(self, zone_tree, manager):
        os.unlink(zone_tree.org_zone)

        assert list(manager.list_records()) == ["example.com"]

    def test_list_single_missing_zone_raises(self, zone_tree, manager):
        os.unlink(zone_tree.org_zone)

        with pytest.raises(ZoneFileNotFoundError):
            manager.list_records("example.org")

    def test_domains_follow_named_conf(self, zone_tree, manager):
        """Domains SHALL be re-read from named.conf on every call."""
        assert manager.domains() == ["example.com", "example.org"]

        with open(zone_tree.named_conf, "a") as f:
            f.write('zone "example.net" IN {\n    type master;\n    file "example.net.db";\n};\n')

        assert manager.domains() == ["example.com", "example.org", "example.net"]

    def test_no_backups_initially(self, manager):
        assert manager.list_backups("example.com") == []


class TestValidatorFailures:
    """Zone check failures surface their diagnostics."""

    def test_validation_failure_logged(self, zone_tree):
        validator = FakeValidator(zone_ok=False)
        manager = build_manager(zone_tree, validator)

        result = manager.create_cname("blog", "example.com", "www")

        assert result.status == "validation_failed"
        statuses = [entry.status for entry in manager.logger_service.get_recent_logs()]
        assert "validation_failed" in statuses
