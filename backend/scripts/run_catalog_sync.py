#!/usr/bin/env python3
"""
Run a catalog sync from the command line

Same orchestrators as the HTTP endpoints, for scheduled jobs and manual
backfills.

Usage:
    python scripts/run_catalog_sync.py popular
    python scripts/run_catalog_sync.py discography --artist-id 0kbYTNQb4Pb1rPbbaF0pT4
    python scripts/run_catalog_sync.py missing-tracks --limit 50
    python scripts/run_catalog_sync.py artist-profiles
    python scripts/run_catalog_sync.py stale-albums --max-age-days 30
    python scripts/run_catalog_sync.py catalog --genre jazz
"""

from script_base import ScriptBase, run_script

import catalog_db
import catalog_sync


def build_script(log_dir=None) -> ScriptBase:
    script = ScriptBase(
        name="run_catalog_sync",
        log_dir=log_dir,
        description="Synchronize albums and artists from Spotify into the record store",
        epilog=__doc__.split('Usage:')[1]
    )
    script.add_debug_arg()

    commands = script.parser.add_subparsers(dest='command', required=True)

    commands.add_parser('popular', help='Sync one page of new releases')

    discography = commands.add_parser('discography', help="Sync an artist's full discography")
    discography.add_argument('--artist-id', required=True, help='Spotify artist id')

    missing_tracks = commands.add_parser('missing-tracks', help='Backfill albums without tracks')
    script.add_limit_arg(missing_tracks)

    artist_profiles = commands.add_parser('artist-profiles', help='Refresh stored artist profiles')
    script.add_limit_arg(artist_profiles)

    stale = commands.add_parser('stale-albums', help='Refresh popularity of stale albums')
    script.add_limit_arg(stale)
    stale.add_argument('--max-age-days', type=int, default=14,
                       help='Refresh albums not updated for this many days (default: 14)')

    catalog = commands.add_parser('catalog', help='Scheduled sweep: new releases, discovery, popularity')
    catalog.add_argument('--genre', help='Seed genre for artist discovery (default: random)')
    catalog.add_argument('--artists', type=int, default=2,
                         help='Artists to discover in the seed genre (default: 2)')

    return script


def run_command(args, client, store=catalog_db) -> dict:
    """Dispatch a parsed command to its orchestrator and return summary stats"""
    if args.command == 'popular':
        return {'albums_synced': catalog_sync.sync_popular_albums(client, store)}
    if args.command == 'discography':
        return {'albums_synced': catalog_sync.sync_artist_discography(client, store, args.artist_id)}
    if args.command == 'missing-tracks':
        return {'albums_populated': catalog_sync.backfill_missing_tracks(client, store, page_limit=args.limit)}
    if args.command == 'artist-profiles':
        return {'artists_processed': catalog_sync.backfill_artist_profiles(client, store, page_limit=args.limit)}
    if args.command == 'stale-albums':
        return {'albums_refreshed': catalog_sync.refresh_stale_albums(
            client, store, max_age_days=args.max_age_days, limit=args.limit)}
    if args.command == 'catalog':
        return catalog_sync.sync_catalog(client, store, genre=args.genre, artists_per_run=args.artists)
    raise ValueError(f"Unknown command: {args.command}")


def main():
    script = build_script()
    args = script.parse_args()

    client = script.connect()
    script.print_header({"DEBUG": args.debug}, title=f"Catalog Sync: {args.command}")

    stats = run_command(args, client)
    stats.update(client.stats)

    script.print_summary(stats)
    return True


if __name__ == "__main__":
    run_script(main)
