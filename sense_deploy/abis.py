"""
Minimal ABIs for the external contracts the tasks talk to.

Only the entry points the tasks call are listed. Contracts deployed by the
tasks themselves take their ABI from the Hardhat artifact instead.
"""

from typing import Any, Dict, List, Optional


def _param(type_: str, name: str = "", components: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
    param: Dict[str, Any] = {"name": name, "type": type_}
    if components is not None:
        param["components"] = components
    return param


def _fn(name, inputs=(), outputs=(), mutability="nonpayable") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": list(inputs),
        "outputs": list(outputs),
        "stateMutability": mutability,
    }


ERC20_ABI = [
    _fn("name", outputs=[_param("string")], mutability="view"),
    _fn("symbol", outputs=[_param("string")], mutability="view"),
    _fn("totalSupply", outputs=[_param("uint256")], mutability="view"),
    _fn("balanceOf", [_param("address", "account")], [_param("uint256")], "view"),
    _fn("approve", [_param("address", "spender"), _param("uint256", "amount")], [_param("bool")]),
    _fn("transfer", [_param("address", "to"), _param("uint256", "amount")], [_param("bool")]),
]

ADAPTER_ABI = [
    _fn("name", outputs=[_param("string")], mutability="view"),
    _fn("target", outputs=[_param("address")], mutability="view"),
    _fn("stake", outputs=[_param("address")], mutability="view"),
    _fn("stakeSize", outputs=[_param("uint256")], mutability="view"),
    _fn("scale", outputs=[_param("uint256")]),
    _fn("setIsTrusted", [_param("address", "user"), _param("bool", "trusted")]),
]

SERIES_COMPONENTS = [
    _param("address", "pt"),
    _param("uint48", "issuance"),
    _param("address", "yt"),
    _param("uint96", "tilt"),
    _param("address", "sponsor"),
    _param("uint256", "reward"),
    _param("uint256", "iscale"),
    _param("uint256", "mscale"),
    _param("uint256", "maxscale"),
]

DIVIDER_ABI = [
    _fn(
        "series",
        [_param("address", "adapter"), _param("uint256", "maturity")],
        [_param("tuple", "", SERIES_COMPONENTS)],
        "view",
    ),
    _fn(
        "issue",
        [_param("address", "adapter"), _param("uint256", "maturity"), _param("uint256", "tBal")],
        [_param("uint256", "uBal")],
    ),
    _fn("setGuard", [_param("address", "adapter"), _param("uint256", "cap")]),
    _fn(
        "adapterMeta",
        [_param("address", "adapter")],
        [
            _param("uint248", "id"),
            _param("bool", "enabled"),
            _param("uint256", "guard"),
            _param("uint8", "level"),
        ],
        "view",
    ),
]

_ADAPTER_MATURITY = [_param("address", "adapter"), _param("uint256", "maturity")]

PERIPHERY_ABI = [
    _fn(
        "sponsorSeries",
        _ADAPTER_MATURITY + [_param("bool", "withPool")],
        [_param("address", "pt"), _param("address", "yt")],
    ),
    _fn("onboardAdapter", [_param("address", "adapter"), _param("bool", "addAdapter")]),
    _fn(
        "addLiquidityFromTarget",
        _ADAPTER_MATURITY + [_param("uint256", "tBal"), _param("uint8", "mode"), _param("uint256", "minBptOut")],
        [_param("uint256", "tAmount"), _param("uint256", "issued"), _param("uint256", "lpShares")],
    ),
    _fn(
        "swapTargetForPTs",
        _ADAPTER_MATURITY + [_param("uint256", "tBal"), _param("uint256", "minAccepted")],
        [_param("uint256", "ptBal")],
    ),
    _fn(
        "swapTargetForYTs",
        _ADAPTER_MATURITY + [_param("uint256", "targetIn"), _param("uint256", "minOut")],
        [_param("uint256", "targetBal"), _param("uint256", "ytBal")],
    ),
    _fn(
        "swapPTsForTarget",
        _ADAPTER_MATURITY + [_param("uint256", "ptBal"), _param("uint256", "minAccepted")],
        [_param("uint256", "tBal")],
    ),
    _fn(
        "swapYTsForTarget",
        _ADAPTER_MATURITY + [_param("uint256", "ytBal")],
        [_param("uint256", "tBal")],
    ),
]

SPACE_ABI = ERC20_ABI + [
    _fn("getPoolId", outputs=[_param("bytes32")], mutability="view"),
]

CHAINLINK_ORACLE_ABI = [
    _fn(
        "latestRoundData",
        outputs=[
            _param("uint80", "roundId"),
            _param("int256", "answer"),
            _param("uint256", "startedAt"),
            _param("uint256", "updatedAt"),
            _param("uint80", "answeredInRound"),
        ],
        mutability="view",
    ),
]

ROLLER_UTILS_ABI = [
    _fn("getFutureMaturity", [_param("uint256", "targetDuration")], [_param("uint256", "maturity")], "view"),
]

ROLLER_PERIPHERY_ABI = [
    _fn(
        "mintFromUnderlying",
        [
            _param("address", "roller"),
            _param("uint256", "shares"),
            _param("address", "receiver"),
            _param("uint256", "maxAmountIn"),
        ],
        [_param("uint256", "underlyingIn")],
    ),
]

AUTO_ROLLER_FACTORY_ABI = [
    _fn(
        "create",
        [
            _param("address", "adapter"),
            _param("address", "rewardRecipient"),
            _param("uint256", "targetDuration"),
        ],
        [_param("address", "autoRoller")],
    ),
]

AUTO_ROLLER_ABI = ERC20_ABI + [
    _fn("roll"),
    _fn("deposit", [_param("uint256", "assets"), _param("address", "receiver")], [_param("uint256", "shares")]),
]
