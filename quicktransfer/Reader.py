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

import glob
import os
import sys
import tempfile
import zipfile

from quicktransfer.File import ServableFile
from quicktransfer.Kernel import getLogger
from quicktransfer.Settings import DEFAULT_ARCHIVE_NAME, DEFAULT_STDIN_NAME, SettingsGetter
from quicktransfer.Stream import FileStat, StatStream
from quicktransfer.Utils import flushPrint

logger = getLogger(__name__)


def stripSuffix(name, suffix):
    """basename of name without suffix, unless that would leave nothing."""
    base = os.path.basename(name)
    if suffix and base.endswith(suffix) and base != suffix:
        return base[:-len(suffix)]
    return base


def withExtension(name, extension, suffix):
    return f"{stripSuffix(name, suffix)}.{extension.lstrip('.')}"


class SourceResolver:
    """Turns what was passed on the command line into the ServableFile of this run"""

    def __init__(self, filename=None, extension=None, cwd=None):
        self.filename = filename
        self.extension = extension
        self.cwd = cwd or os.getcwd()

        settings = SettingsGetter.getInstance()
        self.chunkSize = settings.chunkSize
        self.spoolMemoryLimit = settings.spoolMemoryLimit

    @property
    def name(self):
        raise NotImplementedError

    def resolve(self):
        raise NotImplementedError

    @classmethod
    def build(cls, files, filename=None, extension=None, glob=False, cwd=None):
        """
        Factory method to create the appropriate resolver

        Args:
            files: Paths or glob patterns; empty means stdin
            filename: Name to serve the content under
            extension: Replaces the extension of the served name
            glob: Treat a single argument as a pattern and build an archive
            cwd: Directory relative paths and archive entry names are based on

        Returns:
            SourceResolver: StdinSource, FileSource or ArchiveSource
        """
        files = list(files or [])

        if not files:
            return StdinSource(filename=filename, extension=extension, cwd=cwd)

        if len(files) == 1 and not glob:
            return FileSource(files[0], filename=filename, extension=extension, cwd=cwd)

        return ArchiveSource(files, filename=filename, extension=extension, cwd=cwd)

    def _spool(self, produce):
        """
        Run produce(contents) against a StatStream backed by a spool, and return the
        ServableFile built once the stream reports its final size.
        """
        stat = FileStat.generated()
        spool = tempfile.SpooledTemporaryFile(max_size=self.spoolMemoryLimit)
        contents = StatStream(stat, spool)
        resolved = []

        def onFinalized(stat, **kwargs):
            spool.seek(0)
            resolved.append(ServableFile(spool, os.path.join(self.cwd, self.name), stat))

        contents.finalized.connect(onFinalized)

        try:
            produce(contents)
            contents.end()
        except BaseException:
            spool.close()
            raise

        return resolved[0]


class StdinSource(SourceResolver):

    def __init__(self, filename=None, extension=None, cwd=None, stream=None):
        super().__init__(filename, extension, cwd)
        self.stream = stream

    @property
    def name(self):
        name = self.filename or DEFAULT_STDIN_NAME
        if self.extension:
            name = withExtension(name, self.extension, '.txt')
        return name

    def resolve(self):
        stream = self.stream or sys.stdin.buffer
        if self.stream is None and sys.stdin.isatty():
            flushPrint('Reading from stdin, press Ctrl+D when done.', file=sys.stderr)

        logger.debug(f'Sending data read from stdin as "{self.name}"')
        return self._spool(lambda contents: contents.consume(stream, self.chunkSize))


class FileSource(SourceResolver):

    def __init__(self, path, filename=None, extension=None, cwd=None):
        super().__init__(filename, extension, cwd)
        self.path = path

    @property
    def name(self):
        name = self.filename or self.path
        if self.extension:
            name = withExtension(name, self.extension, os.path.splitext(name)[1])
        return os.path.basename(name)

    def resolve(self):
        logger.debug(f'Sending a single file "{self.path}" as "{self.name}"')

        stream = open(os.path.join(self.cwd, self.path), 'rb')
        try:
            stat = FileStat.fromOSStat(os.fstat(stream.fileno()))
        except OSError:
            stream.close()
            raise

        return ServableFile(stream, os.path.join(self.cwd, self.name), stat)


class ArchiveSource(SourceResolver):
    """Zip of everything the patterns match, deflated, with names relative to cwd."""

    def __init__(self, patterns, filename=None, extension=None, cwd=None):
        super().__init__(filename, extension, cwd)
        self.patterns = list(patterns)

        if extension:
            flushPrint('Warning: setting extension on a zip of the passed files', file=sys.stderr)

    @property
    def name(self):
        name = self.filename or DEFAULT_ARCHIVE_NAME
        if self.extension:
            name = withExtension(name, self.extension, '.zip')
        return name

    def expand(self):
        """Matched paths, in pattern order, each listed once."""
        matches = []
        seen = set()

        for pattern in self.patterns:
            if not os.path.isabs(pattern):
                pattern = os.path.join(self.cwd, pattern)

            for path in sorted(glob.glob(pattern, recursive=True)):
                path = os.path.normpath(path)
                if path not in seen:
                    seen.add(path)
                    matches.append(path)

        return matches

    def resolve(self):
        paths = self.expand()
        if not paths:
            raise FileNotFoundError(f'No files match {", ".join(self.patterns)}')

        logger.debug(f'Sending an archive of {len(paths)} entries as "{self.name}"')

        def produce(contents):
            with zipfile.ZipFile(contents, 'w', compression=zipfile.ZIP_DEFLATED, strict_timestamps=False) as archive:
                for path in paths:
                    self._addEntry(archive, contents.stat, path)

        return self._spool(produce)

    def _addEntry(self, archive, stat, path):
        if not os.path.isfile(path) and not os.path.isdir(path):
            logger.debug(f'Skipping "{path}", neither a file nor a directory')
            return

        arcname = os.path.relpath(path, self.cwd).replace(os.sep, '/')
        logger.debug(f'Adding "{arcname}" to archive')

        # Directories become empty entries, their content is only added when matched.
        archive.write(path, arcname)

        entryStat = os.stat(path)
        if stat.uid is not None:
            stat.uid = min(stat.uid, entryStat.st_uid)
        if stat.gid is not None:
            stat.gid = min(stat.gid, entryStat.st_gid)
