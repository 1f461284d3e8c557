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

import mimetypes
import os

from quicktransfer.Kernel import getLogger
from quicktransfer.Settings import DEFAULT_CONTENT_TYPE

logger = getLogger(__name__)

ENCODING_CONTENT_TYPES = {
    'gzip': 'application/gzip',
    'bzip2': 'application/x-bzip2',
    'xz': 'application/x-xz',
    'compress': 'application/x-compress',
    'br': 'application/x-brotli',
}


class ServableFile:
    """
    The single logical file one run exposes: a byte stream that is read at most once,
    the logical path used to name it, and its stat record.

    The path only names the file. Nothing is ever opened through it.
    """

    def __init__(self, stream, path, stat):
        self._stream = stream
        self._path = path
        self._stat = stat
        self._consumed = False

    @property
    def path(self):
        return self._path

    @property
    def name(self):
        return os.path.basename(self._path)

    @property
    def stat(self):
        return self._stat

    @property
    def size(self):
        return self._stat.size

    @property
    def modifiedTime(self):
        return self._stat.mtime

    @property
    def contentType(self):
        contentType, encoding = mimetypes.guess_type(self.name)
        # A compressed file is served as its compression format, not what it unpacks to.
        if encoding:
            return ENCODING_CONTENT_TYPES.get(encoding, DEFAULT_CONTENT_TYPE)
        return contentType or DEFAULT_CONTENT_TYPE

    @property
    def consumed(self):
        return self._consumed

    @property
    def closed(self):
        return self._stream.closed

    def iterChunks(self, chunkSize):
        """
        Yield the content once, never more than the announced size. A second pass is an error
        since the stream may be a pipe.
        """
        if self._consumed:
            raise RuntimeError(f'"{self.name}" has already been consumed (single-use only)')

        self._consumed = True

        remaining = self.size
        while remaining > 0:
            chunk = self._stream.read(min(chunkSize, remaining))
            if not chunk:
                break
            remaining -= len(chunk)
            yield chunk

    def close(self):
        if not self._stream.closed:
            logger.debug(f'Closing stream of "{self.name}"')
            self._stream.close()

    def __enter__(self):
        return self

    def __exit__(self, excType, excVal, excTb):
        self.close()

    def __repr__(self):
        return f'ServableFile(path={self._path!r}, size={self.size}, contentType={self.contentType!r})'
