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
import math
import os
import shutil
import stat
import time

from signalslot import Signal

from quicktransfer.Kernel import getLogger

DEFAULT_BLOCK_SIZE = 4096

logger = getLogger(__name__)


def currentUmask():
    # There is no read-only accessor for the umask.
    mask = os.umask(0)
    os.umask(mask)
    return mask


class FileStat:
    """Mutable stat record of a servable file, the part of os.stat_result the server needs."""

    def __init__(self, size=0, mtime=None, mode=None, blksize=DEFAULT_BLOCK_SIZE, blocks=0, uid=None, gid=None):
        self.size = size
        self.mtime = time.time() if mtime is None else mtime
        self.mode = stat.S_IFREG | 0o644 if mode is None else mode
        self.blksize = blksize
        self.blocks = blocks
        self.uid = uid
        self.gid = gid

    @classmethod
    def fromOSStat(cls, osStat):
        return cls(
            size=osStat.st_size,
            mtime=osStat.st_mtime,
            mode=osStat.st_mode,
            blksize=getattr(osStat, 'st_blksize', DEFAULT_BLOCK_SIZE),
            blocks=getattr(osStat, 'st_blocks', 0),
            uid=osStat.st_uid,
            gid=osStat.st_gid,
        )

    @classmethod
    def generated(cls):
        """Empty regular file record for content produced on the fly (stdin, archives)."""
        return cls(
            mode=stat.S_IFREG | (0o666 & ~currentUmask()),
            uid=os.getuid() if hasattr(os, 'getuid') else None,
            gid=os.getgid() if hasattr(os, 'getgid') else None,
        )

    def isFile(self):
        return stat.S_ISREG(self.mode)

    def __repr__(self):
        return f'FileStat(size={self.size}, blocks={self.blocks}, blksize={self.blksize}, mtime={self.mtime})'


class StatStream(io.RawIOBase):
    """
    Write-through stream that populates the given stat's size and blocks.

    Every chunk written is handed unchanged to the sink right away; the byte count is
    bookkeeping on the side. Once the upstream source is exhausted, end() freezes the size
    and emits `finalized` exactly once:

        stat = FileStat.generated()
        contents = StatStream(stat, spool)
        contents.finalized.connect(onFinalized)
        contents.consume(sys.stdin.buffer)
    """

    BLOCKS_PER_CHUNK = 8

    def __init__(self, stat, sink):
        super().__init__()

        self.stat = stat
        self.stat.blksize = self.stat.blksize or DEFAULT_BLOCK_SIZE
        self.sink = sink
        self.ended = False
        self.finalized = Signal(args=['stat'])

        logger.debug(f'Creating StatStream for {stat}')

    def writable(self):
        return True

    def write(self, chunk):
        if self.ended:
            raise ValueError('Write after end: the size of this stream is already finalized')

        length = memoryview(chunk).nbytes
        self.sink.write(chunk)

        self.stat.size += length
        self.stat.blocks = math.ceil(self.stat.size / self.stat.blksize) * self.BLOCKS_PER_CHUNK

        logger.debug(f'Processed {length} bytes, new size {self.stat.size}')
        return length

    def end(self):
        """Mark the source as exhausted. Only the first call emits `finalized`."""
        if self.ended:
            return self.stat

        self.ended = True
        if hasattr(self.sink, 'flush'):
            self.sink.flush()

        logger.debug('Emitting "finalized" signal')
        self.finalized.emit(stat=self.stat)

        return self.stat

    def consume(self, source, chunkSize=64 * 1024):
        """Pipe a readable source through this stream until EOF, then finalize."""
        shutil.copyfileobj(source, self, chunkSize)
        return self.end()
