"""CLI script listing (and optionally removing) correction pictures no row refers to.
Usage: python scripts/collect_orphan_blobs.py [--delete]

Run it while the API is stopped: a picture uploaded between the scan
and the removal would otherwise lose its file.
"""
import argparse

from sqlmodel import Session

from tracker.config import settings
from tracker.database import engine
from tracker.storage import CorrectionStore


def main(delete: bool = False):
    store = CorrectionStore(settings.CORRECTIONS_PATH)
    with Session(engine) as session:
        orphans = sorted(store.orphan_digests(session))
    if not orphans:
        print('No orphan pictures found')
        return
    removed = 0
    for digest in orphans:
        if delete:
            if store.remove_blob(digest):
                removed += 1
            print(f'Removed {digest}')
        else:
            print(f'Orphan {digest}')
    if delete:
        print(f'Removed {removed} of {len(orphans)} orphan pictures')
    else:
        print(f'{len(orphans)} orphan pictures (dry run, pass --delete to remove them)')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--delete', action='store_true', help='Remove the orphan pictures instead of listing them')
    args = parser.parse_args()
    main(delete=args.delete)
