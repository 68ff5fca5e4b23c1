import pytest
import pytest_asyncio
import json
import time # Need time import for patching
from mcp_nft_launchpad import server
from mcp_nft_launchpad import rate_limiter
import mcp_nft_launchpad.launch_manager as launch_manager
from mcp_nft_launchpad.randomness import QueuedRandomnessOracle
from solders.pubkey import Pubkey
from dotenv import load_dotenv
from unittest.mock import patch, MagicMock

load_dotenv()

T0 = 1_700_000_000
OWNER = str(Pubkey.new_unique())
PROJECT_OWNER = str(Pubkey.new_unique())
ALICE = str(Pubkey.new_unique())
BOB = str(Pubkey.new_unique())


def launch_definition(**overrides) -> dict:
    definition = {
        "launch_id": "genesis",
        "variant": "dutch_auction",
        "owner": OWNER,
        "project_owner": PROJECT_OWNER,
        "collection": {
            "name": "Genesis", "symbol": "GEN", "collection_size": 100, "max_per_request": 5,
            "max_per_address": 10, "amount_for_auction": 40, "amount_for_allowlist": 20, "amount_for_devs": 10,
        },
        "schedule": {
            "auction_start": T0 + 100, "pre_commit_start": T0 + 500, "allowlist_start": T0 + 600,
            "public_sale_start": T0 + 700, "public_sale_end": T0 + 800,
        },
        "curve": {
            "start_price": 1000, "end_price": 200, "drop_interval": 100,
            "allowlist_discount_bps": 1000, "public_discount_bps": 500,
        },
        "reveal": {"batch_size": 10, "start_time": T0, "interval": 0},
        "allowlist": {ALICE: 3},
    }
    definition.update(overrides)
    return definition


@pytest.fixture(autouse=True)
def isolated_launches(tmp_path, monkeypatch):
    """Points the launch manager at a temporary directory and clears all in-memory state."""
    monkeypatch.setattr(launch_manager, "MODULE_DIR", tmp_path)
    monkeypatch.setattr(launch_manager, "oracle", None)
    launch_manager.launches.clear()
    launch_manager.launch_configs.clear()
    launch_manager.clear_launch_cache()
    rate_limiter.rate_limit_cache.clear()
    yield
    launch_manager.launches.clear()
    launch_manager.launch_configs.clear()


@pytest_asyncio.fixture
async def genesis():
    with patch("time.time", return_value=T0):
        result = await server.create_launch(context=MagicMock(), config_json=json.dumps(launch_definition()))
    assert "created/updated successfully" in result
    return launch_manager.get_launch("genesis")


@pytest.mark.asyncio
async def test_create_launch_persists_definition(tmp_path):
    with patch("time.time", return_value=T0):
        result = await server.create_launch(context=MagicMock(), config_json=json.dumps(launch_definition()))
    assert result == "Launch 'genesis' created/updated successfully."

    saved = json.loads((tmp_path / "launch_configs" / "genesis.json").read_text())
    assert saved["collection"]["symbol"] == "GEN"
    assert launch_manager.get_launch_config("genesis").owner == OWNER


@pytest.mark.asyncio
async def test_create_launch_rejects_bad_input():
    mock_context = MagicMock()
    assert "Invalid JSON format" in await server.create_launch(context=mock_context, config_json="{not json")

    invalid = launch_definition(owner="not-an-address")
    result = await server.create_launch(context=mock_context, config_json=json.dumps(invalid))
    assert result.startswith("Error: Invalid launch configuration")

    oversized = launch_definition()
    oversized["collection"]["amount_for_auction"] = 95
    result = await server.create_launch(context=mock_context, config_json=json.dumps(oversized))
    assert result.startswith("Error:")
    assert launch_manager.get_launch("genesis") is None


@pytest.mark.asyncio
async def test_get_launch_info(genesis):
    with patch("time.time", return_value=T0 + 250):
        info = json.loads(await server.get_launch_info(context=MagicMock(), launch_id="genesis"))
    assert info["phase"] == "dutch_auction"
    assert info["price"] == 800
    assert info["total_minted"] == 0
    assert info["revealed"] == 0


@pytest.mark.asyncio
async def test_unknown_launch():
    result = await server.get_launch_info(context=MagicMock(), launch_id="missing")
    assert result == "Launch with id missing not found."
    result = await server.mint_public(context=MagicMock(), launch_id="missing", requester=ALICE, quantity=1, payment=1)
    assert result == "Launch with id missing not found."


@pytest.mark.asyncio
async def test_auction_mint_with_refund(genesis):
    with patch("time.time", return_value=T0 + 250):
        result = await server.mint_auction(
            context=MagicMock(), launch_id="genesis", requester=ALICE, quantity=2, payment=2000
        )
    assert result == "Minted 2 GEN at 800 each (total 1600). Refunded 400."
    assert genesis.treasury.sent[Pubkey.from_string(ALICE)] == 400


@pytest.mark.asyncio
async def test_rejections_are_reported(genesis):
    mock_context = MagicMock()
    with patch("time.time", return_value=T0):
        result = await server.mint_auction(context=mock_context, launch_id="genesis", requester=ALICE, quantity=1, payment=1000)
    assert result.startswith("Error:") and "not_started" in result

    with patch("time.time", return_value=T0 + 250):
        result = await server.mint_auction(context=mock_context, launch_id="genesis", requester=BOB, quantity=2, payment=100)
        assert result == "Error: Payment of 100 is insufficient, 1600 required"
        result = await server.mint_auction(context=mock_context, launch_id="genesis", requester="bogus", quantity=1, payment=800)
        assert result.startswith("Error: Invalid input")
        result = await server.dev_mint(context=mock_context, launch_id="genesis", requester=ALICE, quantity=1)
        assert "is not the project owner" in result


@pytest.mark.asyncio
async def test_pre_commit_and_settlement(genesis):
    mock_context = MagicMock()
    with patch("time.time", return_value=T0 + 550):
        result = await server.pre_commit(context=mock_context, launch_id="genesis", requester=ALICE, quantity=3, payment=2700)
        assert result == "Pre-committed 3 GEN at 900 each (total 2700)."

    with patch("time.time", return_value=T0 + 650):
        result = await server.settle_pending(context=mock_context, launch_id="genesis", requester=BOB, max_quantity=2)
        assert result == "Delivered 2 item(s) to 1 pre-commit(s); 1 still pending."
        result = await server.settle_pending(context=mock_context, launch_id="genesis", requester=BOB, max_quantity=2)
        assert result == "Delivered 1 item(s) to 1 pre-commit(s); 0 still pending."
        result = await server.settle_pending(context=mock_context, launch_id="genesis", requester=BOB, max_quantity=2)
        assert result == "Nothing pending for launch 'genesis'."

    assert genesis.registry.number_minted(Pubkey.from_string(ALICE)) == 3


@pytest.mark.asyncio
async def test_owner_configuration_tools(genesis):
    mock_context = MagicMock()
    with patch("time.time", return_value=T0):
        result = await server.update_schedule_boundary(
            context=mock_context, launch_id="genesis", requester=OWNER, boundary="public_sale_end", timestamp=T0 + 900
        )
        assert result == f"Boundary 'public_sale_end' of launch 'genesis' set to {T0 + 900}."
        result = await server.update_schedule_boundary(
            context=mock_context, launch_id="genesis", requester=OWNER, boundary="mint_start", timestamp=T0 + 900
        )
        assert result.startswith("Error: Invalid input")
        result = await server.update_reveal_setting(
            context=mock_context, launch_id="genesis", requester=OWNER, setting="interval", value=60
        )
        assert result == "Reveal interval of launch 'genesis' set to 60."
        result = await server.seed_allowlist(
            context=mock_context, launch_id="genesis", requester=OWNER, addresses=[BOB], amounts=[2]
        )
        assert result == "Allowlist of launch 'genesis' updated for 1 address(es)."
        result = await server.configure_schedule(
            context=mock_context, launch_id="genesis", requester=OWNER,
            schedule_json=json.dumps(launch_definition()["schedule"]),
            curve_json=json.dumps(launch_definition()["curve"]), flat_prices_json=None,
        )
        assert "already set" in result

    assert genesis.schedule.public_sale_end == T0 + 900
    assert genesis.reveal.interval == 60
    assert genesis.ledger.allowance_of(Pubkey.from_string(BOB)) == 2


@pytest.mark.asyncio
async def test_reveal_and_resolve(genesis):
    mock_context = MagicMock()
    with patch("time.time", return_value=T0 + 10):
        assert "Error:" in await server.reveal_next(context=mock_context, launch_id="genesis", requester=BOB)
        await server.dev_mint(context=mock_context, launch_id="genesis", requester=PROJECT_OWNER, quantity=10)
        result = await server.reveal_next(context=mock_context, launch_id="genesis", requester=BOB)
        assert result == "Revealed batch 0 of launch 'genesis'."

    index = await server.resolve_metadata_index(context=mock_context, launch_id="genesis", item_id=0)
    assert 0 <= int(index) < 100
    result = await server.resolve_metadata_index(context=mock_context, launch_id="genesis", item_id=10)
    assert result == "Item 10 is not revealed yet."

    events = json.loads(await server.get_events(context=mock_context, launch_id="genesis", limit=10))
    assert [event["kind"] for event in events] == ["mint", "reveal"]


@pytest.mark.asyncio
async def test_oracle_reveal_through_tools(monkeypatch):
    oracle = QueuedRandomnessOracle()
    monkeypatch.setattr(launch_manager, "oracle", oracle)
    mock_context = MagicMock()
    with patch("time.time", return_value=T0 + 10):
        await server.create_launch(context=mock_context, config_json=json.dumps(launch_definition()))
        await server.dev_mint(context=mock_context, launch_id="genesis", requester=PROJECT_OWNER, quantity=10)
        result = await server.reveal_next(context=mock_context, launch_id="genesis", requester=BOB)
    assert result == "Randomness request 1 filed for launch 'genesis'."

    assert await server.fulfill_randomness(context=mock_context, request_id=1) == "Randomness request 1 fulfilled."
    assert launch_manager.get_launch("genesis").reveal.last_revealed == 10
    assert (await server.fulfill_randomness(context=mock_context, request_id=1)).startswith("Error:")


@pytest.mark.asyncio
async def test_fulfill_without_oracle():
    result = await server.fulfill_randomness(context=MagicMock(), request_id=1)
    assert "No randomness oracle is configured" in result


@pytest.mark.asyncio
async def test_rate_limit_per_requester(genesis):
    mock_context = MagicMock()
    with patch("mcp_nft_launchpad.rate_limiter.RATE_LIMIT_PER_MINUTE", 2):
        with patch("time.time", return_value=T0 + 250):
            for _ in range(2):
                result = await server.mint_auction(context=mock_context, launch_id="genesis", requester=ALICE, quantity=1, payment=800)
                assert result.startswith("Minted 1 GEN")
            result = await server.mint_auction(context=mock_context, launch_id="genesis", requester=ALICE, quantity=1, payment=800)
            assert result.startswith("Rate limit exceeded")
            # Other requesters are unaffected.
            result = await server.mint_auction(context=mock_context, launch_id="genesis", requester=BOB, quantity=1, payment=800)
            assert result.startswith("Minted 1 GEN")

        with patch("time.time", return_value=T0 + 320):
            result = await server.mint_auction(context=mock_context, launch_id="genesis", requester=ALICE, quantity=1, payment=800)
            assert result.startswith("Minted 1 GEN")
