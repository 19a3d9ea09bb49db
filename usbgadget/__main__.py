#!/usr/bin/python3

''' python -m usbgadget [show|enable|disable|udcs] '''

import argparse
import logging
import sys

import usbgadget
from usbgadget.codec import decode_bm_attributes, format_ether
from usbgadget.errors import UsbgError
from usbgadget.functions import NetAttrs
from usbgadget.tools import CONFIGFS_PATH, UDC_DIR, LANG_US_ENG

_logger = logging.getLogger(__name__ if __name__ != '__main__' else 'usbgadget')


def show_gadget(g, out):
    out.write('ID %s %s\n' % (g.name, 'bound to %s' % g.udc if g.udc else 'unbound'))
    try:
        attrs = g.get_attrs()
    except UsbgError as e:
        out.write('  attributes unavailable: %s\n' % e)
    else:
        for field, value in zip(attrs._fields, attrs):
            width = 4 if field in ('bcdUSB', 'idVendor', 'idProduct', 'bcdDevice') else 2
            out.write('  %-16s 0x%0*x\n' % (field, width, value))
    strs = g.get_strs(LANG_US_ENG)
    if strs is not None:
        for field, value in zip(strs._fields, strs):
            out.write('  %-16s %s\n' % (field, value))

def show_function(f, out):
    out.write('  Function %s (%s)\n' % (f.name, f.type.name.lower()))
    try:
        attrs = f.get_attrs()
    except UsbgError as e:
        out.write('    attributes unavailable: %s\n' % e)
        return
    if attrs is None:
        return
    for field, value in zip(attrs._fields, attrs):
        if isinstance(attrs, NetAttrs) and field in ('dev_addr', 'host_addr') and value:
            value = format_ether(value)
        out.write('    %-14s %s\n' % (field, value))

def show_config(c, out):
    out.write('  Config %s\n' % c.name)
    try:
        attrs = c.get_attrs()
    except UsbgError as e:
        out.write('    attributes unavailable: %s\n' % e)
    else:
        self_powered, remote_wakeup = decode_bm_attributes(attrs.bmAttributes)
        out.write('    %-14s %s\n' % ('MaxPower', attrs.bMaxPower))
        out.write('    %-14s 0x%02x (self powered: %s, remote wakeup: %s)\n' % (
            'bmAttributes', attrs.bmAttributes, self_powered, remote_wakeup))
    strs = c.get_strs(LANG_US_ENG)
    if strs is not None:
        out.write('    %-14s %s\n' % ('configuration', strs.configuration))
    for b in c.bindings:
        target = b.target
        out.write('    %s -> %s\n' % (b.name, target.name if target else '%s (missing)' % b.target_name))

def show(state, out=sys.stdout):
    for g in state:
        show_gadget(g, out)
        for f in g.functions:
            show_function(f, out)
        for c in g.configs:
            show_config(c, out)

def main(argv=None):
    parser = argparse.ArgumentParser(description='Inspect and bind USB gadgets (configfs).')
    parser.add_argument('--log-level', type=str, help='CRITICAL, ERROR, WARNING, INFO, DEBUG', default='WARN')
    parser.add_argument('--configfs', type=str, default=CONFIGFS_PATH,
        help='configfs mount point; default: %s' % CONFIGFS_PATH)
    parser.add_argument('--udc-dir', type=str, default=UDC_DIR,
        help='where to look for device controllers; default: %s' % UDC_DIR)
    sub = parser.add_subparsers(dest='command')
    sub.add_parser('show', help='print gadgets, functions and configs (default)')
    sub.add_parser('udcs', help='list available device controllers')
    p = sub.add_parser('enable', help='bind a gadget to a UDC')
    p.add_argument('gadget')
    p.add_argument('--udc', default=None, help='controller name (first available if omitted)')
    p = sub.add_parser('disable', help='unbind a gadget')
    p.add_argument('gadget')

    args = parser.parse_args(argv)

    numeric_level = getattr(logging, args.log_level.upper(), None)
    if not isinstance(numeric_level, int):
        raise ValueError('Invalid log level: %s' % args.log_level)
    logging.basicConfig(level=numeric_level)

    if args.command == 'udcs':
        try:
            udcs = usbgadget.get_udcs(args.udc_dir)
        except UsbgError as e:
            print('Unable to list UDCs: %s' % e, file=sys.stderr)
            return 1
        for udc in udcs:
            print(udc)
        return 0

    try:
        state = usbgadget.init(args.configfs, args.udc_dir)
    except UsbgError as e:
        print('Unable to read gadgets: %s' % e, file=sys.stderr)
        return 1

    try:
        if args.command in ('enable', 'disable'):
            g = state.get_gadget(args.gadget)
            if g is None:
                print('No such gadget: %s' % args.gadget, file=sys.stderr)
                return 1
            err = g.enable(args.udc) if args.command == 'enable' else g.disable()
            if err is not None:
                print('Permissions failed? (%s)' % err, file=sys.stderr)
                return 1
        else:
            show(state)
    finally:
        usbgadget.cleanup(state)
    return 0


if __name__ == '__main__':
    sys.exit(main())
