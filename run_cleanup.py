#!/usr/bin/env python3
"""
Cleanup script for idle rooms.

Removes waiting rooms that were never started and have been idle longer
than the retention window (WAITING_ROOM_TTL_HOURS, default 24). Playing and
finished rooms are never touched.

Usage:
    python run_cleanup.py                     # Run cleanup
    python run_cleanup.py --dry-run           # Show what would be cleaned without doing it
    python run_cleanup.py --older-than 6      # Use a 6 hour window instead of the default
    python run_cleanup.py -y                  # Skip confirmation prompts
"""
import asyncio
import sys
import argparse
from closeword.database import AsyncSessionLocal
from closeword.services import CleanupService


async def run_cleanup(
    dry_run: bool = False,
    verbose: bool = False,
    older_than_hours: int | None = None,
    skip_confirmation: bool = False,
):
    """
    Run database cleanup tasks.

    Args:
        dry_run: Show what would be cleaned without actually cleaning
        verbose: Show detailed information
        older_than_hours: Idle window override
        skip_confirmation: Skip confirmation prompts
    """
    async with AsyncSessionLocal() as session:
        try:
            cleanup_service = CleanupService(session)
            hours = older_than_hours or cleanup_service.settings.waiting_room_ttl_hours

            print("=" * 60)
            print("DATABASE CLEANUP")
            print("=" * 60)

            if dry_run:
                print("\n🔍 DRY RUN MODE - No data will be deleted\n")

            results = {}

            print("\n--- Idle Waiting Rooms Cleanup ---")
            idle_count = await cleanup_service.count_idle_waiting_rooms(hours)

            if idle_count > 0:
                print(f"Found {idle_count} waiting room(s) idle for more than {hours}h")

                if dry_run:
                    results["would_delete_idle_waiting_rooms"] = idle_count
                elif not skip_confirmation and sys.stdin and sys.stdin.isatty():
                    confirm = input("\nDelete idle rooms? (yes/no): ")
                    if confirm.lower() not in ["yes", "y"]:
                        print("Idle room cleanup skipped.")
                    else:
                        results["idle_waiting_rooms"] = await cleanup_service.cleanup_idle_waiting_rooms(hours)
                else:
                    results["idle_waiting_rooms"] = await cleanup_service.cleanup_idle_waiting_rooms(hours)
            else:
                print("No idle waiting rooms found.")

            # ===== Summary =====
            print("\n" + "=" * 60)
            print("CLEANUP SUMMARY")
            print("=" * 60)

            if results:
                if verbose:
                    print("\nDetailed results:")
                    for key, value in results.items():
                        if value > 0:
                            print(f"  {key}: {value}")

                total_cleaned = sum(results.values())
                if dry_run:
                    print(f"\nWould clean: {total_cleaned} total items")
                else:
                    print(f"\nCleaned: {total_cleaned} total items")
            else:
                print("\nNo items needed cleanup.")

            print()

        except Exception as e:
            print(f"\n❌ Error during cleanup: {e}", file=sys.stderr)
            raise


def main():
    """Main entry point for the cleanup script."""
    parser = argparse.ArgumentParser(
        description="Remove idle waiting rooms",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s                      # Run cleanup
  %(prog)s --dry-run            # Show what would be cleaned
  %(prog)s --older-than 6 -y    # Six hour window, no prompt
        """
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be deleted without actually deleting"
    )
    parser.add_argument(
        "--older-than",
        type=int,
        default=None,
        metavar="HOURS",
        help="Idle window in hours (defaults to WAITING_ROOM_TTL_HOURS)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Show detailed information"
    )
    parser.add_argument(
        "-y", "--yes",
        action="store_true",
        help="Skip confirmation prompts (for automated scripts)"
    )

    args = parser.parse_args()

    asyncio.run(run_cleanup(
        dry_run=args.dry_run,
        verbose=args.verbose,
        older_than_hours=args.older_than,
        skip_confirmation=args.yes,
    ))


if __name__ == "__main__":
    main()
