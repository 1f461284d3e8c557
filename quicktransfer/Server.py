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

import socket
import socketserver
import threading

from concurrent.futures import Future
from enum import Enum
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import quote, unquote, urlsplit

from signalslot import Signal

from quicktransfer.Kernel import PUBLIC_VERSION, QuickTransferError, getLogger
from quicktransfer.Settings import DEFAULT_ADDRESS, DEFAULT_PORT, SettingsGetter
from quicktransfer.Utils import formatSize
from quicktransfer.Progress import Progress

FAVICON_PATH = '/favicon.ico'

logger = getLogger(__name__)


class BindError(QuickTransferError):
    """The requested address/port could not be bound; nothing is listening."""
    pass


class TransferError(QuickTransferError):
    """The response could not be completed (socket or stream failure mid-transfer)."""
    pass


class SessionState(Enum):
    IDLE = 'idle'
    LISTENING = 'listening'
    HANDLING = 'handling'
    CLOSED = 'closed'


class TransferResult:
    """What the single qualifying response did."""

    def __init__(self, status, path, bytesSent=0):
        self.status = status
        self.path = path
        self.bytesSent = bytesSent

    def __repr__(self):
        return f'TransferResult(status={self.status}, path={self.path!r}, bytesSent={self.bytesSent})'


def contentDisposition(filename, disposition='attachment'):
    """
    Build a Content-Disposition value. Names outside ISO-8859-1 get a '?' fallback in
    filename plus the RFC 5987 encoded filename* parameter.
    """
    fallback = ''.join(c if ' ' <= c <= '~' or '\x80' <= c <= '\xff' else '?' for c in filename)
    escaped = fallback.replace('\\', '\\\\').replace('"', '\\"')

    value = f'{disposition}; filename="{escaped}"'
    if fallback != filename:
        value += f"; filename*=UTF-8''{quote(filename, safe='!#$&+^`|')}"

    return value


class ServeOnceHandler(BaseHTTPRequestHandler):
    """
    Answers with the servable file when the path matches, 404 otherwise. The request that
    ends the session (a match, or any mismatch except a favicon probe) sets `closing`, and
    the session is torn down once its response has been flushed in finish().
    """

    protocol_version = 'HTTP/1.1'
    server_version = f'QuickTransfer/{PUBLIC_VERSION}'

    closing = False
    result = None
    transferError = None

    def _requestPath(self):
        # Path of the request target (origin or absolute form) without query or fragment.
        return urlsplit(self.path).path

    def _matches(self, path):
        expected = self.server.pathname
        return path == expected or unquote(path) == expected

    def _beginHandling(self):
        if self.server.beginHandling():
            self.closing = True
            return True

        logger.debug('Another request already owns this session, responding 503')
        self._sendText(HTTPStatus.SERVICE_UNAVAILABLE, 'Transfer already in progress')
        return False

    def handleRequest(self):
        path = self._requestPath()
        logger.debug(f'Received request for {path}')

        if self._matches(path):
            if self._beginHandling():
                self._sendFile(path)
        elif path == FAVICON_PATH:
            logger.debug('Responding 404 to a favicon.ico request')
            self._sendText(HTTPStatus.NOT_FOUND, f'Unknown file: {path}')
        else:
            logger.debug(f'Responding 404, "{path}" did not match expected "{self.server.pathname}"')
            if self._beginHandling():
                self.result = self._sendText(HTTPStatus.NOT_FOUND, f'Unknown file: {path}')

    # Methods are not distinguished, only the path is.
    do_GET = handleRequest
    do_HEAD = handleRequest
    do_POST = handleRequest
    do_PUT = handleRequest
    do_DELETE = handleRequest
    do_PATCH = handleRequest
    do_OPTIONS = handleRequest

    def _sendText(self, status, text):
        body = text.encode('utf-8')

        try:
            self.send_response(status, status.phrase)
            self.send_header('Connection', 'close')
            self.send_header('Content-Length', str(len(body)))
            self.send_header('Content-Type', 'text/plain')
            self.end_headers()
            if self.command != 'HEAD':
                self.wfile.write(body)
        except OSError as e:
            self.transferError = self._buildTransferError(f'Unable to respond {status.value}: {e}', e)

        return TransferResult(status.value, self._requestPath(), len(body))

    def _sendFile(self, path):
        servable = self.server.servable
        headers = {
            'Connection': 'close',
            'Content-Disposition': contentDisposition(servable.name),
            'Content-Length': str(servable.size),
            'Content-Type': servable.contentType,
            'Last-Modified': self.date_time_string(servable.modifiedTime),
        }

        logger.debug(f'Responding 200 with headers {headers}')

        written = 0
        progress = None
        if self.server.showProgress and self.command != 'HEAD':
            progress = Progress(servable.size, sizeFormatter=formatSize)

        try:
            self.send_response(HTTPStatus.OK, 'OK')
            for key, value in headers.items():
                self.send_header(key, value)
            self.end_headers()

            if self.command != 'HEAD':
                for chunk in servable.iterChunks(self.server.chunkSize):
                    self.wfile.write(chunk)
                    written += len(chunk)

                    if progress:
                        progress.update(written)

                if written != servable.size:
                    self.transferError = TransferError(
                        f'"{servable.name}" ended after {written} of {servable.size} bytes'
                    )
        except OSError as e:
            self.transferError = self._buildTransferError(
                f'Transfer of "{servable.name}" failed after {formatSize(written)}: {e}', e
            )
        finally:
            if progress:
                progress.finish()

        self.result = TransferResult(HTTPStatus.OK.value, path, written)

    def _buildTransferError(self, message, cause):
        logger.debug(message)
        error = TransferError(message)
        error.__cause__ = cause
        return error

    def handle(self):
        try:
            super().handle()
        except Exception as e:
            if self.closing and self.transferError is None:
                self.transferError = self._buildTransferError(f'Unable to complete the response: {e}', e)
            raise

    def finish(self):
        try:
            super().finish()
        finally:
            if self.closing:
                self.server.closeSession(self)

    def log_message(self, format, *args):
        logger.info(f'{self.address_string()} - {format % args}')


class ServeOnceServer(ThreadingHTTPServer):
    """
    HTTP server bound to one servable file that handles exactly one qualifying request.

    Nothing is bound until listen(). start() runs the accept loop and returns the
    TransferResult once the session is closed, or raises the TransferError. The optional
    callback receives (error, result) exactly once, and never for a server that did not bind.
    """

    request_queue_size = 5
    allow_reuse_address = True
    allow_reuse_port = False # An occupied port must fail to bind
    daemon_threads = True

    def __init__(self, servable, callback=None, requestHandlerClass=None, chunkSize=None, showProgress=False):
        self.servable = servable
        self.pathname = '/' + servable.name
        self.chunkSize = chunkSize or SettingsGetter.getInstance().chunkSize
        self.showProgress = showProgress

        self.state = SessionState.IDLE
        self.serving = False
        self.completion = Future()
        self.listening = Signal(args=['address', 'port'])

        # Guards the session state and the completion future.
        self._lock = threading.RLock()

        if callback:
            self.completion.add_done_callback(self._notify(callback))

        if requestHandlerClass is None:
            requestHandlerClass = ServeOnceHandler

        logger.debug(f'Serving file {servable}')

        super().__init__(('', 0), requestHandlerClass, bind_and_activate=False)

    @staticmethod
    def _notify(callback):

        def done(future):
            if future.cancelled():
                return

            error = future.exception()
            callback(error, None if error else future.result())

        return done

    @property
    def address(self):
        """The real (address, port) once bound."""
        return tuple(self.server_address[:2])

    @property
    def closed(self):
        return self.state is SessionState.CLOSED

    def server_bind(self):
        # HTTPServer.server_bind would resolve the FQDN of the bind address, which can stall.
        socketserver.TCPServer.server_bind(self)
        host, port = self.server_address[:2]
        self.server_name = host
        self.server_port = port

    def listen(self, port=DEFAULT_PORT, address=DEFAULT_ADDRESS):
        with self._lock:
            if self.state is not SessionState.IDLE:
                raise RuntimeError(f'Server is {self.state.value}, it can only listen once')

        self.server_address = (address, port or 0)

        try:
            self.server_bind()
            self.server_activate()
        except (OSError, OverflowError) as e:
            self.close()
            reason = getattr(e, 'strerror', None) or str(e)
            raise BindError(f'Unable to listen on {address}:{port}: {reason}') from e

        with self._lock:
            self.state = SessionState.LISTENING

        boundAddress, boundPort = self.address
        logger.debug(f'Server listening on {boundAddress}:{boundPort}')

        self.listening.emit(address=boundAddress, port=boundPort)

        return boundAddress, boundPort

    def start(self):
        if self.state is not SessionState.LISTENING:
            raise RuntimeError(f'Server is {self.state.value}, listen() must succeed before start()')

        self.serving = True
        try:
            self.serve_forever()
        finally:
            self.serving = False

        return self.completion.result()

    def beginHandling(self):
        """Claim the session for one request. Only the first qualifying request gets True."""
        with self._lock:
            if self.state is not SessionState.LISTENING:
                return False

            self.state = SessionState.HANDLING
            return True

    def closeSession(self, handler):
        logger.debug('Response finished, destroying server')

        try:
            self._killConnection(handler.connection)
            self._closeListener()
        finally:
            logger.debug('Destroying all streams')
            self.servable.close()

            with self._lock:
                self.state = SessionState.CLOSED

            logger.debug('Server closed')
            self._complete(handler.result, handler.transferError)

    def close(self):
        """Tear down from outside, e.g. when the link cannot be displayed. No completion is delivered."""
        with self._lock:
            if self.state is SessionState.CLOSED:
                return
            self.state = SessionState.CLOSED

        logger.debug('Closing server')

        try:
            self._closeListener()
        finally:
            self.servable.close()

            with self._lock:
                self.completion.cancel()

    def _complete(self, result=None, error=None):
        with self._lock:
            if self.completion.done():
                return False

            if error is not None:
                self.completion.set_exception(error)
            else:
                self.completion.set_result(result)

        return True

    def _killConnection(self, connection):
        logger.debug('Killing socket')

        try:
            connection.shutdown(socket.SHUT_WR)
        except OSError:
            pass # some platforms may raise ENOTCONN here
        connection.close()

    def _closeListener(self):
        if self.serving:
            self.shutdown()
        self.server_close()

    def handle_error(self, request, client_address):
        logger.exception(f'Error while handling request from {client_address}')


def createServer(servable, callback=None, handlerClass=None, chunkSize=None, showProgress=False):
    # Factory function to create a not-yet-listening server for the given file
    return ServeOnceServer(
        servable, callback, requestHandlerClass=handlerClass, chunkSize=chunkSize, showProgress=showProgress
    )
