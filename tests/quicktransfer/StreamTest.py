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
import os
import stat
import tempfile
import unittest
import zipfile

from quicktransfer.Stream import DEFAULT_BLOCK_SIZE, FileStat, StatStream


class FileStatTest(unittest.TestCase):

    def testGeneratedIsEmptyRegularFile(self):
        fileStat = FileStat.generated()

        self.assertEqual(fileStat.size, 0)
        self.assertEqual(fileStat.blocks, 0)
        self.assertEqual(fileStat.blksize, DEFAULT_BLOCK_SIZE)
        self.assertTrue(fileStat.isFile())
        self.assertEqual(fileStat.mode & 0o111, 0, "Generated content must not be executable")

    def testFromOSStat(self):
        with tempfile.NamedTemporaryFile() as f:
            f.write(b'x' * 100)
            f.flush()
            osStat = os.stat(f.name)
            fileStat = FileStat.fromOSStat(osStat)

        self.assertEqual(fileStat.size, 100)
        self.assertEqual(fileStat.mtime, osStat.st_mtime)
        self.assertTrue(stat.S_ISREG(fileStat.mode))


class StatStreamTest(unittest.TestCase):
    """Size tracking while data passes through to the sink"""

    def setUp(self):
        self.stat = FileStat.generated()
        self.sink = io.BytesIO()
        self.stream = StatStream(self.stat, self.sink)

        self.finalizedWith = []
        self.stream.finalized.connect(self.onFinalized)

    def onFinalized(self, stat, **kwargs):
        self.finalizedWith.append(stat)

    def testSizeAndBlocksAfterEnd(self):
        """10 bytes + 4096 bytes with the default block size -> 2 blocks of 4096, 16 sectors"""
        self.stream.write(b'0123456789')
        self.stream.write(b'a' * 4096)
        self.stream.end()

        self.assertEqual(self.stat.size, 4106)
        self.assertEqual(self.stat.blocks, 16)
        self.assertEqual(self.sink.getvalue(), b'0123456789' + b'a' * 4096)

        print("[Test] StatStream counted 4106 bytes in 16 blocks")

    def testPassesDataThroughUnchanged(self):
        chunks = [b'hello ', bytearray(b'big '), memoryview(b'world')]
        for chunk in chunks:
            self.assertEqual(self.stream.write(chunk), len(chunk))
        self.stream.end()

        self.assertEqual(self.sink.getvalue(), b'hello big world')
        self.assertEqual(self.stat.size, 15)

    def testEmptySourceFinalizesZero(self):
        self.stream.consume(io.BytesIO(b''))

        self.assertEqual(self.stat.size, 0)
        self.assertEqual(self.stat.blocks, 0)
        self.assertEqual(self.finalizedWith, [self.stat])

    def testFinalizedEmittedOnce(self):
        self.stream.write(b'abc')
        self.stream.end()
        self.stream.end()

        self.assertEqual(len(self.finalizedWith), 1)
        self.assertEqual(self.finalizedWith[0].size, 3)

    def testWriteAfterEndRejected(self):
        self.stream.end()

        with self.assertRaises(ValueError):
            self.stream.write(b'late')

    def testConsumeCopiesWholeSource(self):
        data = bytes(range(256)) * 1000
        self.stream.consume(io.BytesIO(data), chunkSize=1000)

        self.assertEqual(self.sink.getvalue(), data)
        self.assertEqual(self.stat.size, len(data))
        self.assertEqual(self.stat.blocks, 63 * 8)

    def testZipWritesThroughUnseekableStream(self):
        """zipfile falls back to data descriptors since the stream cannot seek"""
        self.assertFalse(self.stream.seekable())

        with zipfile.ZipFile(self.stream, 'w', compression=zipfile.ZIP_DEFLATED) as archive:
            archive.writestr('a.txt', 'first')
            archive.writestr('b/c.txt', 'second')
        self.stream.end()

        self.assertEqual(self.stat.size, len(self.sink.getvalue()))

        with zipfile.ZipFile(io.BytesIO(self.sink.getvalue())) as archive:
            self.assertEqual(archive.namelist(), ['a.txt', 'b/c.txt'])
            self.assertEqual(archive.read('b/c.txt'), b'second')


if __name__ == '__main__':
    unittest.main()
