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

import io

from urllib.parse import quote, urlunsplit

import qrcode

from quicktransfer.Kernel import QuickTransferError, getLogger

logger = getLogger(__name__)


class DisplayError(QuickTransferError):
    pass


class DisplayResult:

    def __init__(self, uri, qrcode):
        self.uri = uri
        self.qrcode = qrcode

    def __str__(self):
        return f'{self.qrcode}\n{self.uri}'

    def __repr__(self):
        return f'DisplayResult(uri={self.uri!r})'


def formatURI(host, port, name):
    return urlunsplit(('http', f'{host}:{port}', '/' + quote(name), '', ''))


def renderQRCode(data):
    qr = qrcode.QRCode(version=None, error_correction=qrcode.constants.ERROR_CORRECT_L, border=1)
    qr.add_data(data)
    qr.make(fit=True)

    out = io.StringIO()
    qr.print_ascii(out=out, invert=True)
    return out.getvalue().rstrip('\n')


def display(host, port, servable):
    """
    Build the download link of servable and its QR code.

    Raises:
        DisplayError: if either cannot be produced, chained to the cause
    """
    try:
        uri = formatURI(host, port, servable.name)
        logger.debug(f'Display URI: {uri}')
        return DisplayResult(uri, renderQRCode(uri))
    except Exception as e:
        raise DisplayError(f'Unable to create URI or QR code: {e}') from e
