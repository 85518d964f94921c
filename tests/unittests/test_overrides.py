# This file is part of ds-identify. See LICENSE file for license information.

import pytest

from dsidentify import overrides, schema
from dsidentify.config import ConfigView
from dsidentify.overrides import OverrideKind
from dsidentify.signals import HostSnapshot, Marker


def snapshot(cmdline="", markers=(), dsname=None):
    return HostSnapshot(
        kernel_cmdline=cmdline,
        markers=frozenset(markers),
        config=ConfigView(dsname=dsname),
    )


class TestParseForceValue:
    @pytest.mark.parametrize(
        "value,expected",
        [
            ("Ec2", ["Ec2"]),
            ("GCE,OpenStack", ["GCE", "OpenStack"]),
            ("GCE, OpenStack", ["GCE", "OpenStack"]),
            ("My_DS-2", ["My_DS-2"]),
            ("", None),
            ("   ", None),
            ("Ec2,", None),
            ("Ec2;rm", None),
            ("$(reboot)", None),
        ],
    )
    def test_parse(self, value, expected):
        assert expected == overrides.parse_force_value(value)


class TestFindDisable:
    def test_cmdline(self):
        found = overrides.find_disable(snapshot("ro cloud-init=disabled"))
        assert OverrideKind.DISABLE == found.kind

    def test_other_cloud_init_values_do_not_disable(self):
        assert overrides.find_disable(snapshot("cloud-init=enabled")) is None

    def test_marker_file(self):
        found = overrides.find_disable(snapshot(markers=[Marker.DISABLED]))
        assert "etc/cloud/cloud-init.disabled" == found.source

    def test_nothing(self):
        assert overrides.find_disable(snapshot("ro quiet")) is None


class TestFindForce:
    def test_cmdline_last_value_wins(self):
        found = overrides.find_force(
            snapshot("ci.ds=Ec2 ci.datasource=GCE"), {}
        )
        assert (OverrideKind.FORCE_LIST, ["GCE"]) == (
            found.kind,
            found.payload,
        )
        assert "kernel command line" == found.source

    def test_env_then_config(self):
        snap = snapshot(dsname="Azure")
        found = overrides.find_force(snap, {"DI_DSNAME": "Oracle"})
        assert (["Oracle"], "DI_DSNAME") == (found.payload, found.source)
        found = overrides.find_force(snap, {})
        assert ["Azure"] == found.payload
        assert "etc/cloud/ds-identify.cfg" == found.source

    @pytest.mark.parametrize("value", ["None", "none"])
    def test_none_is_force_none(self, value):
        found = overrides.find_force(snapshot("ci.ds=%s" % value), {})
        assert OverrideKind.FORCE_NONE == found.kind

    def test_none_in_a_list_is_a_list(self):
        found = overrides.find_force(snapshot("ci.ds=Ec2,None"), {})
        assert OverrideKind.FORCE_LIST == found.kind
        assert ["Ec2", "None"] == found.payload

    def test_malformed_is_skipped(self, caplog):
        found = overrides.find_force(
            snapshot("ci.ds=Ec2|GCE"), {"DI_DSNAME": "bad name"}
        )
        assert found is None
        assert "Ignoring malformed datasource 'Ec2|GCE'" in caplog.text
        assert "Ignoring malformed datasource 'bad name'" in caplog.text


class TestResolve:
    def test_disable_beats_force(self):
        snap = snapshot("ci.ds=Ec2", markers=[Marker.DISABLED])
        assert OverrideKind.DISABLE == overrides.resolve(snap, {}).kind

    def test_nothing(self):
        assert overrides.resolve(snapshot(), {}) is None


class TestFindTestSignals:
    def test_unset(self):
        assert overrides.find_test_signals({}) is None

    def test_missing_file(self, tmp_path, caplog):
        path = str(tmp_path / "nope.yaml")
        assert overrides.find_test_signals({"DI_TEST_SIGNALS": path}) is None
        assert "does not exist" in caplog.text

    def test_not_a_mapping(self, tmp_path, caplog):
        path = tmp_path / "signals.yaml"
        path.write_text("- just\n- a list\n")
        env = {"DI_TEST_SIGNALS": str(path)}
        assert overrides.find_test_signals(env) is None
        assert "is not a mapping" in caplog.text

    def test_undecodable(self, tmp_path, caplog):
        path = tmp_path / "signals.yaml"
        path.write_bytes(b"product_name: \xff\xfe\n")
        env = {"DI_TEST_SIGNALS": str(path)}
        assert overrides.find_test_signals(env) is None
        assert "unable to read" in caplog.text

    def test_unreadable(self, tmp_path, mocker, caplog):
        path = tmp_path / "signals.yaml"
        path.write_text("virt: kvm\n")
        mocker.patch(
            "dsidentify.overrides.util.load_text_file",
            side_effect=PermissionError(13, "Permission denied"),
        )
        env = {"DI_TEST_SIGNALS": str(path)}
        assert overrides.find_test_signals(env) is None
        assert "Permission denied" in caplog.text

    def test_valid(self, tmp_path):
        path = tmp_path / "signals.yaml"
        path.write_text(
            "sys_vendor: Hetzner\n"
            "fs_labels: [cidata]\n"
            "markers: [seed/ec2]\n"
            "iso9660_devs: {/dev/sr0: cidata}\n"
            "vmware:\n  guestinfo: {metadata: '---'}\n"
            "config:\n  datasource_list: [Hetzner, None]\n"
        )
        found = overrides.find_test_signals({"DI_TEST_SIGNALS": str(path)})
        assert OverrideKind.TEST_SIGNALS == found.kind
        snap = found.payload
        assert "Hetzner" == snap.sys_vendor
        assert ("cidata",) == snap.fs_labels
        assert frozenset(["seed/ec2"]) == snap.markers
        assert (("/dev/sr0", "cidata"),) == snap.iso9660_devs
        assert "---" == snap.vmware.get_guestinfo("metadata")
        assert ("Hetzner", "None") == snap.config.dslist

    def test_schema_errors(self, tmp_path, caplog):
        path = tmp_path / "signals.yaml"
        path.write_text("virt: 7\nmarkers: [a, a]\n")
        env = {"DI_TEST_SIGNALS": str(path)}
        assert overrides.find_test_signals(env) is None
        assert "Test signals schema errors: markers:" in caplog.text


class TestValidateTestSignals:
    def test_valid(self):
        schema.validate_test_signals(
            {"product_name": "x", "ibm_provisioning": True}
        )

    def test_unknown_top_level_key(self):
        with pytest.raises(schema.SchemaValidationError) as exc:
            schema.validate_test_signals({"colour": "blue"})
        assert [
            schema.SchemaProblem(
                "colour",
                "Additional properties are not allowed"
                " ('colour' was unexpected)",
            )
        ] == exc.value.schema_errors

    def test_nested_errors_have_paths(self):
        with pytest.raises(schema.SchemaValidationError) as exc:
            schema.validate_test_signals(
                {"config": {"datasource_list": ["ok", "not ok"]}}
            )
        assert ["config.datasource_list"] == [
            p.path for p in exc.value.schema_errors
        ]

    def test_alternative_schema(self):
        with pytest.raises(schema.SchemaValidationError, match="a: 1 is not"):
            schema.validate_test_signals(
                {"a": 1}, {"properties": {"a": {"type": "string"}}}
            )
