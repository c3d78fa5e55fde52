#!/usr/bin/env python3
"""
Example script to start a VM through Xen Orchestra.

Usage: python vm_start.py <vm_id> [timeout_seconds]
"""

import sys

from xoclient import XOClient, XOError, with_timeout


def main():
    if len(sys.argv) not in (2, 3):
        print("Usage: python vm_start.py <vm_id> [timeout_seconds]")
        sys.exit(1)

    vm_id = sys.argv[1]
    timeout = float(sys.argv[2]) if len(sys.argv) > 2 else 120

    try:
        with XOClient() as xo:
            print(f"Starting VM {vm_id}...")
            task_id = xo.vm.start(vm_id, ctx=with_timeout(None, timeout))

            if task_id:
                print(f"VM started, task {task_id}")
            else:
                print("VM started synchronously.")

    except XOError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
