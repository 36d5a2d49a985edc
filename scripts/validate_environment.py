#!/usr/bin/env python3
"""Validate local environment readiness for the availability service."""

from __future__ import annotations

import importlib
import shutil
import sys
import tempfile
from dataclasses import replace
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from backend.domain.intervals import format_for_display, resolve_zone, to_instant
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.services.booking_service import BookingService
from backend.utils.config import get_settings

SEPARATOR_LINE = "=" * 44


def _print_result(name: str, success: bool, detail: str = "") -> tuple[bool, str]:
    if success:
        return True, f"[PASS] {name}{detail}"
    return False, f"[FAIL] {name}: {detail}"


def main() -> int:
    results: list[str] = []
    all_passed = True
    temp_dir = tempfile.mkdtemp(prefix="holiday-home-env-")

    # CHECK 1: Python version >= 3.11
    if sys.version_info >= (3, 11):
        ok, line = _print_result("Python " + sys.version.split()[0], True)
    else:
        ok, line = _print_result(
            "Python version >= 3.11",
            False,
            f"found {sys.version.split()[0]}",
        )
    results.append(line)
    all_passed = all_passed and ok

    # CHECK 2: Required packages importable
    package_specs = [
        ("fastapi", "fastapi"),
        ("uvicorn", "uvicorn"),
        ("pydantic", "pydantic"),
        ("tzdata", "tzdata"),
        ("httpx", "httpx"),
        ("pytest", "pytest"),
    ]
    import_errors: list[str] = []
    for module_name, dist_name in package_specs:
        try:
            importlib.import_module(module_name)
            version(dist_name)
        except (ImportError, PackageNotFoundError) as exc:
            import_errors.append(f"{module_name} ({exc})")
    if import_errors:
        ok, line = _print_result(
            "Required packages",
            False,
            "missing/unimportable -> " + "; ".join(import_errors),
        )
    else:
        ok, line = _print_result("Required packages: all importable", True)
    results.append(line)
    all_passed = all_passed and ok

    base_settings = get_settings()

    # CHECK 3: House timezone resolves and anchors at 15:00 local
    try:
        resolve_zone(base_settings.house_timezone)
        instant = to_instant("2025-03-30", base_settings.house_timezone)
        ok, line = _print_result(
            f"Timezone {base_settings.house_timezone}",
            True,
            f": 2025-03-30 -> {instant.isoformat()} ({format_for_display(instant, base_settings.house_timezone)})",
        )
    except Exception as exc:
        ok, line = _print_result("House timezone", False, str(exc))
    results.append(line)
    all_passed = all_passed and ok

    try:
        validation_settings = replace(
            base_settings,
            database_path=Path(temp_dir) / "validation.db",
        )
        repository = DataRepository(validation_settings)

        # CHECK 4: Database initialization
        try:
            repository.initialize_database()
            ok, line = _print_result("Database initialization", True)
        except Exception as exc:
            ok, line = _print_result("Database initialization", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

        # CHECK 5: Booking round trip and gap calculation
        try:
            bookings = BookingService(repository=repository, settings=validation_settings)
            availability = AvailabilityService(repository=repository, settings=validation_settings)
            booking = bookings.request_booking(
                requester_id="validation",
                start="2025-01-10",
                end="2025-01-15",
                bedroom_count=1,
            )
            bookings.approve(booking.booking_id)
            gaps = availability.find_gaps("2025-01-01", "2025-01-31", min_nights=1)
            if len(gaps) != 2:
                raise RuntimeError(f"expected 2 gaps, got {len(gaps)}")
            ok, line = _print_result("Gap calculation", True, f": {len(gaps)} gaps")
        except Exception as exc:
            ok, line = _print_result("Gap calculation", False, str(exc))
        results.append(line)
        all_passed = all_passed and ok

    finally:
        shutil.rmtree(temp_dir, ignore_errors=True)

    print(SEPARATOR_LINE)
    print(" Availability Environment Validation")
    print(SEPARATOR_LINE)
    for line in results:
        print(f" {line}")
    print(SEPARATOR_LINE)
    if all_passed:
        print(" All checks passed. Environment is ready.")
        print(SEPARATOR_LINE)
        return 0
    print(" One or more checks failed.")
    print(SEPARATOR_LINE)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
