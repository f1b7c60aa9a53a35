# tests/test_package.py
"""Tests for top-level package API."""


class TestPackageImports:
    """Verify the public API surface."""

    def test_version(self):
        import evidex
        assert hasattr(evidex, "__version__")
        assert evidex.__version__ == "0.1.0"

    def test_public_names_resolve(self):
        import evidex
        for name in evidex.__all__:
            assert getattr(evidex, name) is not None, name

    def test_run_entry_points(self):
        from evidex import run_extraction_with_provider, run_with_evidence
        assert callable(run_with_evidence)
        assert callable(run_extraction_with_provider)

    def test_config_importable(self):
        from evidex.config import EvidexConfig, get_config
        assert EvidexConfig is not None
        assert callable(get_config)

    def test_cli_importable(self):
        from evidex.cli import cli
        assert callable(cli)

    def test_engine_package_does_not_pull_in_orchestrator(self):
        import evidex.engine as engine
        assert not hasattr(engine, "run_with_evidence")


class TestEndToEnd:
    """The quick-start flow from the package docstring."""

    def test_run_attest_store_verify(self, tmp_path, program, payload):
        import evidex
        from evidex.evidence.jsonl import read_jsonl, write_jsonl

        provider = evidex.FakeProvider(default_response=payload(("token", "Beta", 6, 10)))
        bundle = evidex.run_with_evidence("e2e", program, "Alpha Beta", provider, "m", 100, 0)
        signed = evidex.attest_evidence_bundle(bundle, b"key", key_id="k")
        path = write_jsonl(tmp_path / "b.jsonl", [signed])
        [loaded] = read_jsonl(path)
        assert evidex.verify_evidence_bundle_attestation(loaded, b"key").valid
        assert [e.quote for e in loaded.extractions] == ["Beta"]
