"""Unit tests for the strategy catalog."""
import pytest

from qrdx.backends.protocol import TransformKind
from qrdx.services.strategies import DIRECT, build_catalog


class TestBuildCatalog:
    def test_canonical_order(self):
        names = [s.name for s in build_catalog()]

        assert names == [
            "direct", "morphology-ellipse", "adaptive-threshold", "otsu-threshold",
            "sharpen", "dot-morphology", "open-close",
        ]

    def test_direct_needs_no_worker(self):
        catalog = build_catalog()

        assert catalog[0].name == DIRECT
        assert not catalog[0].requires_worker
        assert all(s.requires_worker for s in catalog[1:])

    @pytest.mark.parametrize("k,dilate", [(9, 5), (5, 3), (3, 3), (15, 11)])
    def test_kernel_size_flows_into_params(self, k, dilate):
        by_name = {s.name: s for s in build_catalog(k)}

        assert by_name["morphology-ellipse"].params["kernel_size"] == k
        assert by_name["dot-morphology"].params == {"dilate_size": dilate, "close_size": k}
        assert by_name["open-close"].params == {"open_size": 3, "close_size": k}

    def test_sharpen_uses_unsharp_mask(self):
        by_name = {s.name: s for s in build_catalog()}

        assert by_name["sharpen"].kind is TransformKind.UNSHARP

    def test_extended_catalog_appends(self):
        base = build_catalog()
        extended = build_catalog(extended=True)

        assert extended[:len(base)] == base
        assert [s.name for s in extended[len(base):]] == ["morphology-rect", "laplacian-sharpen", "highpass"]

    def test_catalog_is_fresh_each_call(self):
        first = build_catalog()
        first.pop()

        assert len(build_catalog()) == 7

    def test_region_scan_appends_after_extended(self):
        catalog = build_catalog(extended=True, region_scan=True)
        tail = catalog[-3:]

        assert [s.name for s in tail] == ["transparent-rescale", "corner-scan", "sliding-window"]
        assert all(s.scan == s.name and not s.requires_worker for s in tail)
        assert [s.name for s in catalog[:-3]] == [s.name for s in build_catalog(extended=True)]

    def test_region_scan_off_by_default(self):
        assert all(s.scan is None for s in build_catalog(extended=True))
