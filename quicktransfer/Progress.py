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

import sys

from tqdm import tqdm

from quicktransfer.Kernel import getLogger
from quicktransfer.Utils import formatSize

logger = getLogger(__name__)


class BitmathTqdm(tqdm):
    """Custom tqdm class with consistent size formatting."""

    def __init__(self, *args, sizeFormatter=None, unit='B', unitScale=False, **kwargs):
        self.sizeFormatter = sizeFormatter or formatSize

        if 'bar_format' not in kwargs:
            kwargs['bar_format'] = (
                '{desc}: {percentage:3.0f}%|{bar}| '
                '{n_fmt}/{total_fmt} [{elapsed}<{remaining}, {rate_fmt}]'
            )

        super().__init__(*args, unit=unit, unit_scale=unitScale, **kwargs)

    def _formatSpeed(self, rateBytesPerSec):
        if rateBytesPerSec <= 0:
            return "0/sec"

        return f"{self.sizeFormatter(int(rateBytesPerSec))}/sec"

    @property
    def format_dict(self):
        """Override format_dict to use consistent formatting."""
        d = super().format_dict

        d['rate_fmt'] = self._formatSpeed(d.get('rate', 0) or 0)
        d['n_fmt'] = self.sizeFormatter(d.get('n', 0))

        total = d.get('total')
        d['total_fmt'] = self.sizeFormatter(total) if total is not None else '?'

        return d


class Progress:
    """Shows how much of the file has been sent as a tqdm bar on stderr."""

    def __init__(self, totalSize, sizeFormatter=None, file=None):
        self.totalSize = totalSize
        self.transferred = 0
        self.pbar = BitmathTqdm(
            total=totalSize or None,
            desc='Sending',
            sizeFormatter=sizeFormatter or formatSize,
            leave=True,
            ncols=90,
            file=file or sys.stderr,
        )

    def update(self, bytesTransferred):
        """Update progress with the total number of bytes transferred so far."""
        increment = bytesTransferred - self.transferred
        if increment <= 0:
            return

        self.transferred = bytesTransferred
        if self.pbar:
            self.pbar.update(increment)

    def finish(self):
        """Close the progress bar at its current position."""
        if self.pbar:
            try:
                self.pbar.refresh()
                self.pbar.close()
            except (ValueError, AttributeError) as e:
                logger.debug(f"Exception during progress bar cleanup: {e}")
            finally:
                self.pbar = None

    def __enter__(self):
        return self

    def __exit__(self, excType, excVal, excTb):
        self.finish()
