#!/usr/bin/env python
# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0
#
# quick-transfer - Serve a file once over HTTP, then exit
# Copyright (C) 2024-2025 quick-transfer contributors
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

import ipaddress
import os
import socket
import sys

import bitmath
import psutil

from quicktransfer.Kernel import getLogger
from quicktransfer.Settings import SettingsGetter

ONE_KB = bitmath.KiB(1).bytes
ONE_MB = bitmath.MiB(1).bytes
ONE_GB = bitmath.GiB(1).bytes
ONE_TB = bitmath.TiB(1).bytes

LOOPBACK_ADDRESSES = ('0.0.0.0', '127.0.0.1')

logger = getLogger(__name__)


def copy2Clipboard(text):
    if not text:
        return

    isLinux = SettingsGetter.getInstance().isLinux()

    if sys.platform.startswith('darwin'):
        os.environ['PATH'] = '/usr/bin:' + os.environ.get('PATH', '')

    try:
        import pyperclip

        if isLinux:
            xclipBefore = list(filter(lambda p: p.name() == "xclip", psutil.process_iter(['pid'])))

        pyperclip.copy(text)
        flushPrint('The link has been copied to the clipboard.')

        if isLinux:
            # xclip stays alive to own the selection, and would keep our terminal attached.
            xclipAfter = list(filter(lambda p: p.name() == "xclip", psutil.process_iter(['pid'])))
            for process in set(xclipAfter) - set(xclipBefore):
                process.kill()
    except Exception as e:
        logger.debug(f"Clipboard error: {e}")


# flush is required if this is in .exe file or piped.
def flushPrint(text, file=None):
    file = file or sys.stdout
    try:
        print(text, file=file, flush=True)
    except UnicodeEncodeError as e:
        # Fallback for terminals that don't support certain characters (e.g. QR blocks on cp950)
        logger.debug(f"UnicodeEncodeError during print, using fallback encoding: {e}, {file.encoding=}")

        buf = getattr(file, "buffer", None)
        if buf is not None:
            try:
                buf.write(text.encode("utf-8", errors="replace"))
                buf.write(b"\n")
                buf.flush()
                return
            except Exception as e2:
                logger.debug(f"fallback buffer write failed: {e2}")

        print(text.encode(file.encoding, errors='replace').decode(file.encoding), file=file, flush=True)


def formatSize(size, decimal=None, plural=None):
    if decimal is None:
        if size < ONE_GB: # Less than 1GB
            decimal = 0
        elif size < ONE_TB: # Between 1GB and 1TB
            decimal = 1
        else: # Greater than 1TB
            decimal = 2

    if plural is None:
        plural = False if size > ONE_KB else True

    sizeStr = bitmath.Byte(size).best_prefix(system=bitmath.SI).format(
        "{value:.%df}{%s}" % (decimal, 'unit_plural' if plural else 'unit')
    )

    if not sizeStr.endswith('Byte') and not sizeStr.endswith('Bytes') and not sizeStr.endswith('Bits'):
        return sizeStr.replace('B', '').upper()
    else:
        return sizeStr.replace('Byte', ' Byte').replace('Bit', ' Byte')


def isIPv4(address):
    if not address:
        return False

    try:
        ipaddress.IPv4Address(address)
        return True
    except ValueError:
        return False


def getInternalIPv4(default='127.0.0.1'):
    """
    Find the IPv4 address other devices on the local network can reach us by.

    Private addresses of interfaces that are up win over other non-loopback ones.

    Returns:
        str: The address, or default if the machine has no usable interface
    """
    candidates = []

    try:
        stats = psutil.net_if_stats()
        for name, addresses in psutil.net_if_addrs().items():
            if name in stats and not stats[name].isup:
                continue

            for address in addresses:
                if address.family != socket.AF_INET:
                    continue

                ip = ipaddress.IPv4Address(address.address)
                if ip.is_loopback or ip.is_link_local or ip.is_unspecified:
                    continue

                candidates.append(ip)
    except (OSError, ValueError) as e:
        logger.debug(f"Unable to enumerate network interfaces: {e}")

    candidates.sort(key=lambda ip: not ip.is_private)

    if not candidates:
        logger.warning(f"No internal IPv4 address found, using {default}")
        return default

    return str(candidates[0])


def sendException(logger, e, action=None, errorPrefix=None):
    if e and errorPrefix:
        flushPrint(f'{errorPrefix}: {e}', file=sys.stderr)
    elif e:
        flushPrint(f'{e}', file=sys.stderr)

    if action:
        flushPrint(action, file=sys.stderr)

    cause = getattr(e, '__cause__', None)
    if cause is not None:
        logger.debug(f'Caused by: {cause!r}')

    logger.exception(e)

    if os.getenv('RAISE_EXCEPTION', 'False') == 'True' and isinstance(e, BaseException):
        raise e


# Helper functions for environment variable configuration
def getEnv(envVar, default):
    """Safely get value from environment variable with automatic type detection based on default"""
    try:
        value = os.getenv(envVar)
        if value is not None:
            if default is None:
                return value

            # Automatically detect type based on default value
            if isinstance(default, bool):
                return value == "True"
            elif isinstance(default, int):
                return int(value)
            elif isinstance(default, float):
                return float(value)
            elif isinstance(default, str):
                return str(value)
            else:
                return type(default)(value)
        return default
    except (ValueError, TypeError):
        return default
