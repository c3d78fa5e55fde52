#!/usr/bin/env python3
"""
Example script to snapshot a VM through Xen Orchestra.

Usage: python vm_snapshot.py <vm_id> <snapshot_name>
"""

import sys

from xoclient import XOClient, XOError


def main():
    if len(sys.argv) != 3:
        print("Usage: python vm_snapshot.py <vm_id> <snapshot_name>")
        sys.exit(1)

    vm_id = sys.argv[1]
    name = sys.argv[2]

    try:
        with XOClient() as xo:
            print(f"Creating snapshot '{name}' of VM {vm_id}...")
            snapshot = xo.snapshot.create(vm_id, name)

            if isinstance(snapshot, str):
                print(f"Snapshot created, task {snapshot}")
            else:
                print(f"Snapshot created: {snapshot.id}")

    except XOError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
