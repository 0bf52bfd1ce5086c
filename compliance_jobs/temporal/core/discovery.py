"""Discovery utility for Temporal workflows and activities."""

import importlib
import pkgutil
from typing import List

from compliance_jobs.utils.logging import get_logger

logger = get_logger(__name__)

COMPONENT_PACKAGES = [
    "compliance_jobs.temporal.activities",
    "compliance_jobs.temporal.workflows",
]


def discover_package(package_name: str) -> List[str]:
    """Import every module below ``package_name`` so registry decorators run.

    Returns:
        Names of the imported modules
    """
    package = importlib.import_module(package_name)
    imported = []
    for _, mod_name, _ in pkgutil.walk_packages(package.__path__, f"{package_name}."):
        importlib.import_module(mod_name)
        imported.append(mod_name)
        logger.debug(f"Imported Temporal component module: {mod_name}")
    return imported


def discover_all() -> List[str]:
    """Discover all Temporal components."""
    imported = []
    for package_name in COMPONENT_PACKAGES:
        imported.extend(discover_package(package_name))
    logger.info(f"Discovered {len(imported)} Temporal component modules")
    return imported
