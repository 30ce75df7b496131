#!/usr/bin/env python3
"""
Tests for the Series bootstrapper
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from sense_deploy.chain import ZERO_ADDRESS, CallContext
from sense_deploy.config import SeriesAmounts, SeriesPlan, TargetSeries
from sense_deploy.errors import InvariantViolation, PreconditionError
from sense_deploy.rates import ONE_YEAR_SECONDS
from sense_deploy.registry import DeploymentRecord
from sense_deploy.tasks.series import AdapterRef, SeriesBootstrapper, deployed_adapters, format_maturity

NOW = 1_700_000_000
MATURITY = NOW + ONE_YEAR_SECONDS
DEPLOYER = "0x00000000000000000000000000000000000000d1"
TARGET = "0x0000000000000000000000000000000000000070"
ADAPTER = "0x00000000000000000000000000000000000000ad"
PT = "0x0000000000000000000000000000000000000001"
YT = "0x0000000000000000000000000000000000000002"
POOL = "0x0000000000000000000000000000000000000003"


class Contracts(dict):
    """Contract handles keyed by address, created on first use"""

    def __missing__(self, address):
        contract = MagicMock()
        contract.address = address
        self[address] = contract
        return contract


def named_mock(address):
    contract = MagicMock()
    contract.address = address
    return contract


class TestSeriesBootstrapper:
    """Test class for SeriesBootstrapper"""

    def setup_method(self):
        self.contracts = Contracts()
        self.client = MagicMock()
        self.client.deployer = CallContext(DEPLOYER)
        self.client.contract.side_effect = lambda address, abi: self.contracts[address]

        self.divider = named_mock("0x00000000000000000000000000000000000000d0")
        self.periphery = named_mock("0x00000000000000000000000000000000000000e0")
        self.stake = named_mock("0x00000000000000000000000000000000000000f0")
        self.vault = named_mock("0x00000000000000000000000000000000000000b0")
        self.space_factory = named_mock("0x00000000000000000000000000000000000000c0")

        self.space_factory.functions.pools.return_value.call.return_value = POOL
        self.contracts[POOL].functions.getPoolId.return_value.call.return_value = b"\x01" * 32
        self.vault.functions.getPoolTokens.return_value.call.return_value = ([TARGET, PT], [0, 0], 0)

        self.plan = SeriesPlan([TargetSeries("cDAI", [MATURITY])], SeriesAmounts())

    def make_bootstrapper(self, dust_tolerance=None):
        return SeriesBootstrapper(
            client=self.client,
            divider=self.divider,
            periphery=self.periphery,
            stake=self.stake,
            balancer_vault=self.vault,
            space_factory=self.space_factory,
            adapters={"cDAI": AdapterRef("cDAI", TARGET, ADAPTER)},
            plan=self.plan,
            dust_tolerance=dust_tolerance,
            clock=lambda: NOW,
        )

    def test_sponsors_only_once(self):
        """A second run over the same maturity finds the Series and skips sponsorship"""
        self.divider.functions.series.return_value.call.side_effect = [
            SimpleNamespace(pt=ZERO_ADDRESS, yt=ZERO_ADDRESS),
            SimpleNamespace(pt=PT, yt=YT),
        ]
        self.client.static_call.return_value = (PT, YT)
        bootstrapper = self.make_bootstrapper()

        first = bootstrapper.ensure_series(ADAPTER, MATURITY)
        second = bootstrapper.ensure_series(ADAPTER, MATURITY)

        assert first.sponsored and (first.pt, first.yt) == (PT, YT)
        assert not second.sponsored and (second.pt, second.yt) == (PT, YT)
        self.periphery.functions.sponsorSeries.assert_called_once_with(ADAPTER, MATURITY, True)
        assert self.client.transact.call_count == 1

    def test_full_run_order(self):
        self.divider.functions.series.return_value.call.return_value = SimpleNamespace(pt=ZERO_ADDRESS, yt=ZERO_ADDRESS)
        self.client.static_call.side_effect = [(PT, YT), 95 * 10**15, 10**18]

        self.make_bootstrapper().run()

        descriptions = [c.args[1] for c in self.client.transact.call_args_list]
        assert descriptions == [
            f"sponsor series {MATURITY}",
            "issue",
            "add liquidity from target",
            "calibration swap PT for target",
            "swap target for PTs",
            "swap target for YTs",
            "swap PTs for target",
            "swap YTs for target",
            "add liquidity from target",
        ]
        assert self.client.approve.call_args_list[0].args == (self.stake, self.periphery.address)
        self.divider.functions.issue.assert_called_once_with(ADAPTER, MATURITY, SeriesAmounts().issue)

    def test_smoke_swaps_in_order(self):
        amounts = SeriesAmounts()
        self.make_bootstrapper().run_smoke_swaps(ADAPTER, MATURITY, self.contracts[PT])

        calls = [(name, args) for name, args, _ in self.periphery.functions.method_calls]
        assert calls == [
            ("swapTargetForPTs", (ADAPTER, MATURITY, amounts.swap_in, 0)),
            ("swapTargetForYTs", (ADAPTER, MATURITY, amounts.swap_in, 0)),
            ("swapPTsForTarget", (ADAPTER, MATURITY, amounts.swap_out, 0)),
            ("swapYTsForTarget", (ADAPTER, MATURITY, amounts.swap_out)),
            ("addLiquidityFromTarget", (ADAPTER, MATURITY, amounts.top_up, 1, 0)),
        ]

    def test_implied_rate(self):
        """0.095 Target out for 0.1 PT at scale 1.0, one year out"""
        self.client.static_call.side_effect = [95 * 10**15, 10**18]
        bootstrapper = self.make_bootstrapper()
        pool = bootstrapper.resolve_pool(ADAPTER, MATURITY)

        rate = bootstrapper.report_implied_rate(
            AdapterRef("cDAI", TARGET, ADAPTER), MATURITY, pool, self.contracts[PT], self.contracts[TARGET]
        )

        assert abs(rate - 5.2631578947) < 1e-6
        swap_args = self.vault.functions.swap.call_args.args
        assert swap_args[0]['amount'] == SeriesAmounts().probe
        assert swap_args[0]['assetIn'] == PT
        assert swap_args[1]['recipient'] == DEPLOYER

    def test_missing_pool(self):
        self.space_factory.functions.pools.return_value.call.return_value = ZERO_ADDRESS
        with pytest.raises(PreconditionError, match="No Space pool"):
            self.make_bootstrapper().resolve_pool(ADAPTER, MATURITY)

    def test_missing_adapter(self):
        with pytest.raises(PreconditionError, match="wstETH"):
            self.make_bootstrapper().adapter_for("wstETH")

    def test_unmapped_target_fails_before_any_transaction(self):
        """Every target in the plan is matched to an adapter before the first approval"""
        self.plan = SeriesPlan(
            [TargetSeries("cDAI", [MATURITY]), TargetSeries("wstETH", [MATURITY])], SeriesAmounts()
        )

        with pytest.raises(PreconditionError, match="wstETH"):
            self.make_bootstrapper().run()

        self.client.approve.assert_not_called()
        self.client.transact.assert_not_called()

    def test_matured_series_rate_is_only_logged(self, caplog):
        """A price the rate formula rejects is reported and the run goes on"""
        self.client.static_call.side_effect = [95 * 10**15, 10**18]
        bootstrapper = self.make_bootstrapper()
        pool = bootstrapper.resolve_pool(ADAPTER, NOW)

        rate = bootstrapper.report_implied_rate(
            AdapterRef("cDAI", TARGET, ADAPTER), NOW, pool, self.contracts[PT], self.contracts[TARGET]
        )

        assert rate is None
        assert "No implied rate" in caplog.text

    def test_dust_within_tolerance(self):
        self.contracts[TARGET].functions.balanceOf.return_value.call.return_value = 100
        self.make_bootstrapper(dust_tolerance=100).check_periphery_dust(self.contracts[TARGET])

    def test_dust_over_tolerance(self):
        self.contracts[TARGET].functions.balanceOf.return_value.call.return_value = 101
        with pytest.raises(InvariantViolation):
            self.make_bootstrapper(dust_tolerance=100).check_periphery_dust(self.contracts[TARGET])

    def test_dust_check_skipped_without_tolerance(self, caplog):
        self.make_bootstrapper().check_periphery_dust(self.contracts[TARGET])
        self.contracts[TARGET].functions.balanceOf.assert_not_called()
        assert "dust check skipped" in caplog.text


class TestDeployedAdapters:
    """Test class for deployed_adapters"""

    def test_maps_targets_to_adapters(self):
        contracts = Contracts()
        client = MagicMock()
        client.contract.side_effect = lambda address, abi: contracts[address]
        target = "0x00000000000000000000000000000000000000ab"
        contracts[ADAPTER].functions.target.return_value.call.return_value = "0x00000000000000000000000000000000000000AB"
        orphan = "0x00000000000000000000000000000000000000ae"
        contracts[orphan].functions.target.return_value.call.return_value = YT
        store = MagicMock()
        store.all.return_value = [
            DeploymentRecord("cDAI", target, []),
            DeploymentRecord("cDAIAdapter", ADAPTER, []),
            DeploymentRecord("OrphanAdapter", orphan, []),
        ]

        adapters = deployed_adapters(client, store)

        assert list(adapters) == ["cDAI"]
        assert adapters["cDAI"].adapter_address == ADAPTER


def test_format_maturity():
    assert format_maturity(1_798_761_600) == "2027-01-01"
