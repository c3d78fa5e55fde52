#!/usr/bin/env python3
"""
Example script to list the VMs known to Xen Orchestra.

Reads XOA_URL and XOA_TOKEN (or XOA_USER and XOA_PASSWORD) from the environment.

Usage: python list_vms.py [power_state]
"""

import sys

from xoclient import XOClient, XOError
from xoclient.models import VMFilter
from xoclient.paths import build_filter_from_model


def main():
    power_state = sys.argv[1] if len(sys.argv) > 1 else None

    try:
        with XOClient() as xo:
            vms = xo.vm.list(filter=build_filter_from_model(VMFilter(power_state=power_state)))

            print("VMs:")
            print("-" * 50)
            for vm in vms:
                state = vm.power_state.value if vm.power_state else 'N/A'
                print(f"ID: {vm.id}, Name: {vm.name_label}, Pool: {vm.pool_id}, Status: {state}")

    except XOError as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
