import json
import time
from pathlib import Path
from typing import Dict, Optional

from pydantic import ValidationError

from mcp_nft_launchpad.config import LAUNCH_CONFIG_DIR, RANDOMNESS_SOURCE
from mcp_nft_launchpad.errors import ConfigurationError
from mcp_nft_launchpad.launch_controller import LaunchController
from mcp_nft_launchpad.randomness import QueuedRandomnessOracle
from mcp_nft_launchpad.registry import InMemoryRegistry, InMemoryTreasury
from mcp_nft_launchpad.schemas import LaunchConfigModel, parse_address
from mcp.server.fastmcp.utilities.logging import get_logger

logger = get_logger(__name__)

# Determine the absolute path to the directory containing this file
MODULE_DIR = Path(__file__).parent.resolve()

# In-memory storage for loaded launch definitions and their live controllers
launch_configs: Dict[str, LaunchConfigModel] = {}
launches: Dict[str, LaunchController] = {}

# Shared by every launch when RANDOMNESS_SOURCE is "oracle"; request ids are unique across launches
oracle: Optional[QueuedRandomnessOracle] = QueuedRandomnessOracle() if RANDOMNESS_SOURCE == "oracle" else None

_launch_cache_timestamp: float = 0


def build_controller(launch_config: LaunchConfigModel, now: Optional[int] = None) -> LaunchController:
    """
    Builds a LaunchController for a launch definition and applies its optional schedule,
    reveal settings and allowlist on behalf of the owner.

    Raises:
        ConfigurationError: If the definition is inconsistent.
    """
    now = int(time.time()) if now is None else now
    owner = parse_address(launch_config.owner)
    controller = LaunchController(
        launch_id=launch_config.launch_id,
        collection=launch_config.collection,
        owner=owner,
        project_owner=parse_address(launch_config.project_owner),
        registry=InMemoryRegistry(launch_config.collection.collection_size),
        treasury=InMemoryTreasury(),
        variant=launch_config.variant,
        oracle=oracle,
    )
    if launch_config.schedule is not None:
        controller.configure_schedule(
            owner, now, launch_config.schedule, curve=launch_config.curve, flat_prices=launch_config.flat_prices
        )
    if launch_config.reveal is not None:
        controller.configure_reveal(owner, now, launch_config.reveal)
    if launch_config.allowlist:
        addresses = [parse_address(address) for address in launch_config.allowlist]
        controller.seed_allowlist(owner, addresses, list(launch_config.allowlist.values()))
    return controller


def load_launches_from_config_files(config_dir_name: str = LAUNCH_CONFIG_DIR) -> Dict[str, LaunchConfigModel]:
    """
    Loads launch definitions from JSON files in the specified directory relative to this
    module's location. Files are only re-read when one of them changed since the last load.
    Launches that already have a controller keep it (and its sale state).

    Args:
        config_dir_name: The name of the directory containing launch definition files.

    Returns:
        A dictionary mapping launch_id to the validated LaunchConfigModel instance.
    """
    global _launch_cache_timestamp

    config_path = MODULE_DIR / config_dir_name
    if not config_path.is_dir():
        logger.warning(f"Launch configuration directory not found: {config_path}. No launches loaded.")
        return dict(launch_configs)

    if _launch_cache_timestamp > 0 and launch_configs:
        modified = any(path.stat().st_mtime > _launch_cache_timestamp for path in config_path.glob("*.json"))
        if not modified:
            logger.debug("No launch files modified, using cached data")
            return dict(launch_configs)

    logger.info(f"Loading launch configurations from: {config_path.resolve()}")
    loaded: Dict[str, LaunchConfigModel] = {}
    for file_path in sorted(config_path.glob("*.json")):
        try:
            with open(file_path, "r") as f:
                launch_config = LaunchConfigModel.model_validate(json.load(f))

            if launch_config.launch_id != file_path.stem:
                logger.warning(
                    f"Launch ID mismatch in {file_path}: expected '{file_path.stem}', "
                    f"found '{launch_config.launch_id}'. Skipping."
                )
                continue

            if launch_config.launch_id not in launches:
                launches[launch_config.launch_id] = build_controller(launch_config)
            loaded[launch_config.launch_id] = launch_config
            logger.info(f"Successfully loaded launch config: {launch_config.launch_id}")

        except json.JSONDecodeError:
            logger.error(f"Error decoding JSON from file: {file_path}")
        except ValidationError as e:
            logger.error(f"Invalid launch configuration in file {file_path}: {e}")
        except ConfigurationError as e:
            logger.error(f"Inconsistent launch configuration in file {file_path}: {e}")

    launch_configs.update(loaded)
    _launch_cache_timestamp = time.time()
    logger.info(f"Finished loading launches. Total loaded: {len(loaded)}")
    return dict(launch_configs)


def get_launch(launch_id: str) -> Optional[LaunchController]:
    """Retrieves the live controller of a launch by its ID."""
    return launches.get(launch_id)


def get_launch_config(launch_id: str) -> Optional[LaunchConfigModel]:
    return launch_configs.get(launch_id)


def clear_launch_cache():
    """Forces the next load to re-read every launch file."""
    global _launch_cache_timestamp
    _launch_cache_timestamp = 0
    logger.debug("Launch cache cleared")


def add_or_update_launch(launch_config: LaunchConfigModel, config_dir_name: str = LAUNCH_CONFIG_DIR) -> bool:
    """
    Registers a launch definition and saves it as ``<launch_id>.json``.

    A new definition gets a fresh controller. An existing launch keeps its controller and
    sale state; only the stored definition is replaced.

    Raises:
        ConfigurationError: If a new definition is inconsistent (nothing is stored then).
    """
    launch_id = launch_config.launch_id
    if launch_id not in launches:
        launches[launch_id] = build_controller(launch_config)
    else:
        logger.warning(f"Launch '{launch_id}' already running; keeping its sale state")
    launch_configs[launch_id] = launch_config

    config_path = MODULE_DIR / config_dir_name
    config_path.mkdir(parents=True, exist_ok=True)
    file_path = config_path / f"{launch_id}.json"
    try:
        with open(file_path, "w") as f:
            json.dump(launch_config.model_dump(mode="json"), f, indent=4)
        logger.info(f"Successfully saved launch configuration to {file_path}")
        clear_launch_cache()
        return True
    except OSError as e:
        logger.error(f"Error saving launch configuration to {file_path}: {e}")
        return False


# --- Initial Load ---
load_launches_from_config_files()
