#!/usr/bin/env python3
"""
Example script to run a backup job for selected VMs only.

Usage: python backup_vms.py <job_id> <vm_id> [vm_id ...]
"""

import sys

from xoclient import XOClient, XOError


def main():
    if len(sys.argv) < 3:
        print("Usage: python backup_vms.py <job_id> <vm_id> [vm_id ...]")
        sys.exit(1)

    job_id = sys.argv[1]
    vm_ids = sys.argv[2:]

    try:
        with XOClient() as xo:
            job = xo.backup.get_job(job_id)
            print(f"Running backup job '{job.name}' ({job.mode}) for {len(vm_ids)} VM(s)...")
            result = xo.backup.run_job_for_vms(job_id, vm_ids)
            print(f"Backup started: {result}")

    except XOError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
