# client.py -- Smart transport sessions for git-upload-pack
# Copyright (C) 2025 The packscan authors
#
# SPDX-License-Identifier: Apache-2.0 OR GPL-2.0-or-later
# packscan is dual-licensed under the Apache License, Version 2.0 and the GNU
# General Public License as published by the Free Software Foundation; version 2.0
# or (at your option) any later version. You can redistribute it and/or
# modify it under the terms of either of these two licenses.
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
#
# You should have received a copy of the licenses; if not, see
# <http://www.gnu.org/licenses/> for a copy of the GNU General Public License
# and <http://www.apache.org/licenses/LICENSE-2.0> for a copy of the Apache
# License, Version 2.0.
#


"""Client side of the git smart transport, restricted to git-upload-pack.

A session talks to one repository. Calling
:meth:`UploadPackSession.upload_pack` with a
:class:`packscan.request.FetchRequest` reads the server's ref advertisement,
checks its capabilities, sends the request, skips the ACK/NAK response and
returns an :class:`UploadPackResponse` positioned at the first byte of the
pack.

Two transports are supported:

* smart HTTP(S), on top of urllib3
* SSH, by running ``git-upload-pack`` through the local ``ssh`` client

Known capabilities that are not supported:

* multi_ack
* multi_ack_detailed
* side-band
* side-band-64k
* shallow
* protocol v2
"""

__all__ = [
    "SUPPORTED_SCHEMES",
    "Endpoint",
    "HttpUploadPackSession",
    "SSHUploadPackSession",
    "SSHVendor",
    "StrangeHostname",
    "SubprocessSSHVendor",
    "SubprocessWrapper",
    "UploadPackResponse",
    "UploadPackSession",
    "check_for_proxy_bypass",
    "default_urllib3_manager",
    "default_user_agent_string",
    "get_session",
    "get_ssh_vendor",
    "parse_endpoint",
    "read_pkt_refs",
]

import os
import shlex
import subprocess
import sys
import threading
from collections.abc import Callable, Iterable, Iterator
from io import BufferedReader
from types import TracebackType
from typing import IO, TYPE_CHECKING, NamedTuple, Optional, Union
from urllib.parse import unquote, urljoin, urlparse, urlunsplit

import packscan

from .config import Config
from .errors import (
    EndpointError,
    GitProtocolError,
    HangupException,
    HTTPUnauthorized,
    NegotiationRejected,
    NotGitRepository,
    RemoteConnectionError,
)
from .log_utils import getLogger
from .protocol import Protocol, extract_capabilities
from .request import FetchRequest

if TYPE_CHECKING:
    import urllib3
    from urllib3.response import HTTPResponse

logger = getLogger(__name__)

SUPPORTED_SCHEMES = ("http", "https", "ssh", "git+ssh")

UPLOAD_PACK_SERVICE = "git-upload-pack"

ZERO_SHA = b"0" * 40
CAPABILITIES_REF = b"capabilities^{}"

# Read buffer size for the pack stream
_RBUFSIZE = 65536

# Bytes of ssh stderr kept for error reporting
_STDERR_TAIL = 65536


class Endpoint(NamedTuple):
    """A parsed repository locator."""

    scheme: str
    host: str
    port: Optional[int]
    username: Optional[str]
    password: Optional[str]
    path: str

    def url(self) -> str:
        """Return the locator without credentials."""
        netloc = f"[{self.host}]" if ":" in self.host else self.host
        if self.port is not None:
            netloc += f":{self.port}"
        return urlunsplit((self.scheme, netloc, self.path, "", ""))


def parse_endpoint(url: str) -> Endpoint:
    """Parse a repository URL.

    Only ``http``, ``https``, ``ssh`` and ``git+ssh`` URLs are accepted;
    scp-style ``user@host:path`` locators are not.

    Raises:
      EndpointError: if the URL is malformed or uses another scheme
    """
    if not isinstance(url, str):
        raise EndpointError(repr(url), "repository URL must be a string")
    try:
        parsed = urlparse(url)
        port = parsed.port
    except ValueError as exc:
        raise EndpointError(url, str(exc)) from exc
    scheme = parsed.scheme.lower()
    if not scheme:
        raise EndpointError(url, "missing scheme")
    if scheme not in SUPPORTED_SCHEMES:
        raise EndpointError(url, f"unsupported scheme {scheme!r}")
    if not parsed.hostname:
        raise EndpointError(url, "missing host")
    if scheme in ("ssh", "git+ssh") and parsed.path in ("", "/"):
        raise EndpointError(url, "missing repository path")
    return Endpoint(
        scheme=scheme,
        host=parsed.hostname,
        port=port,
        username=unquote(parsed.username) if parsed.username is not None else None,
        password=unquote(parsed.password) if parsed.password is not None else None,
        path=parsed.path,
    )


def read_pkt_refs(pkt_seq: Iterable[bytes]) -> tuple[dict[bytes, bytes], set[bytes]]:
    """Read a protocol v0 ref advertisement.

    Returns: Tuple of (refs, server capabilities)
    Raises:
      NegotiationRejected: if the server sent an ERR line
    """
    server_capabilities = None
    refs: dict[bytes, bytes] = {}
    for pkt in pkt_seq:
        try:
            (sha, ref) = pkt.rstrip(b"\n").split(None, 1)
        except ValueError as exc:
            raise GitProtocolError(f"invalid ref advertisement line {pkt!r}") from exc
        if sha == b"ERR":
            raise NegotiationRejected(ref.decode("utf-8", "replace"))
        if server_capabilities is None:
            (ref, server_capabilities) = extract_capabilities(ref)
        refs[ref] = sha

    if len(refs) == 0:
        return {}, set()
    if refs == {CAPABILITIES_REF: ZERO_SHA}:
        refs = {}
    assert server_capabilities is not None
    return refs, set(server_capabilities)


def _handle_upload_pack_head(proto: Protocol, request: FetchRequest) -> None:
    for line in request.iter_pkt_lines():
        proto.write_pkt_line(line)


def _handle_upload_pack_tail(proto: Protocol) -> None:
    """Consume the ACK/NAK lines that precede the pack.

    Raises:
      NegotiationRejected: if the server answered with an ERR line, e.g.
        for a want it does not have
    """
    pkt = proto.read_pkt_line()
    while pkt:
        parts = pkt.rstrip(b"\n").split(b" ")
        if parts[0] == b"ERR":
            raise NegotiationRejected(
                pkt[4:].rstrip(b"\n").decode("utf-8", "replace")
            )
        if parts[0] not in (b"ACK", b"NAK"):
            raise GitProtocolError(f"unexpected negotiation response {pkt!r}")
        if len(parts) < 3 or parts[2] not in (b"ready", b"continue", b"common"):
            break
        pkt = proto.read_pkt_line()


def _check_advertisement(
    request: FetchRequest, refs: dict[bytes, bytes], capabilities: set[bytes]
) -> None:
    if not refs:
        raise NegotiationRejected("remote repository sent an empty ref advertisement")
    request.check_server_capabilities(capabilities)


class UploadPackResponse:
    """The pack stream sent back by git-upload-pack.

    ``read(size)`` blocks until ``size`` bytes are available and returns
    fewer only at the end of the stream.
    """

    def __init__(
        self,
        read: Callable[[int], bytes],
        close: Optional[Callable[[], None]] = None,
        server_capabilities: Optional[set[bytes]] = None,
    ) -> None:
        self._read = read
        self._close = close
        self.server_capabilities = server_capabilities or set()
        self.closed = False

    def read(self, size: int = _RBUFSIZE) -> bytes:
        return self._read(size)

    def close(self) -> None:
        """Release the underlying connection; safe to call more than once."""
        if self.closed:
            return
        self.closed = True
        if self._close is not None:
            self._close()

    def __enter__(self) -> "UploadPackResponse":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()


class UploadPackSession:
    """A connection to the git-upload-pack service of one repository."""

    def __init__(self, endpoint: Endpoint, config: Optional[Config] = None) -> None:
        self.endpoint = endpoint
        self.config = config

    def upload_pack(self, request: FetchRequest) -> UploadPackResponse:
        """Negotiate ``request`` and return the pack stream.

        Raises:
          RemoteConnectionError: if the remote cannot be reached or hangs up
          NegotiationRejected: if the server refuses the request
        """
        raise NotImplementedError(self.upload_pack)

    def close(self) -> None:
        """Release any resources held by this session."""

    def __enter__(self) -> "UploadPackSession":
        return self

    def __exit__(
        self,
        exc_type: Optional[type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.endpoint.url()!r})"


class SubprocessWrapper:
    """A socket-like object that talks to a subprocess via pipes."""

    def __init__(self, proc: "subprocess.Popen[bytes]") -> None:
        self.proc = proc
        assert proc.stdout is not None
        assert proc.stdin is not None
        self.read = BufferedReader(proc.stdout).read  # type: ignore[arg-type]
        self.write = proc.stdin.write
        self._stderr_tail = bytearray()
        self._stderr_lock = threading.Lock()
        self._stderr_thread: Optional[threading.Thread] = None
        if proc.stderr is not None:
            # The subprocess blocks once its stderr pipe is full, so it is
            # drained for as long as the subprocess runs.
            self._stderr_thread = threading.Thread(
                target=self._drain_stderr,
                args=(proc.stderr,),
                name="ssh-stderr",
                daemon=True,
            )
            self._stderr_thread.start()

    def _drain_stderr(self, stderr: IO[bytes]) -> None:
        while True:
            try:
                data = stderr.read(4096)
            except (OSError, ValueError):
                break
            if not data:
                break
            with self._stderr_lock:
                self._stderr_tail.extend(data)
                del self._stderr_tail[:-_STDERR_TAIL]

    def stderr_lines(self, timeout: Optional[float] = 5) -> list[bytes]:
        """Return the last lines the subprocess wrote to stderr.

        Waits up to ``timeout`` seconds for the subprocess to close stderr.
        """
        if self._stderr_thread is not None:
            self._stderr_thread.join(timeout)
        with self._stderr_lock:
            return bytes(self._stderr_tail).splitlines()

    def close(self, timeout: Optional[int] = 60) -> None:
        """Close the subprocess and wait for it to terminate.

        Raises:
          GitProtocolError: If subprocess doesn't terminate within timeout
        """
        if self.proc.stdin:
            self.proc.stdin.close()
        if self.proc.stdout:
            self.proc.stdout.close()
        try:
            self.proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired as e:
            self.proc.kill()
            self.proc.wait()
            raise GitProtocolError(
                f"Git subprocess did not terminate within {timeout} seconds; killed it."
            ) from e
        finally:
            if self._stderr_thread is not None:
                self._stderr_thread.join(1)
            if self.proc.stderr:
                self.proc.stderr.close()


class SSHVendor:
    """A client side SSH implementation."""

    def run_command(
        self,
        host: str,
        command: bytes,
        username: Optional[str] = None,
        port: Optional[int] = None,
        key_filename: Optional[str] = None,
        ssh_command: Optional[str] = None,
    ) -> SubprocessWrapper:
        """Connect to an SSH server.

        Run a command remotely and return a file-like object for interaction
        with the remote command.

        Args:
          host: Host name
          command: Command to run
          username: Optional name of user to log in as
          port: Optional SSH port to use
          key_filename: Optional path to private keyfile
          ssh_command: Optional SSH command
        """
        raise NotImplementedError(self.run_command)


class StrangeHostname(EndpointError):
    """Refusing to connect to strange SSH hostname."""

    def __init__(self, hostname: str) -> None:
        super().__init__(hostname, "refusing to connect to host name starting with '-'")


class SubprocessSSHVendor(SSHVendor):
    """SSH vendor that shells out to the local 'ssh' command."""

    def run_command(
        self,
        host: str,
        command: bytes,
        username: Optional[str] = None,
        port: Optional[int] = None,
        key_filename: Optional[str] = None,
        ssh_command: Optional[str] = None,
    ) -> SubprocessWrapper:
        if ssh_command:
            args = [*shlex.split(ssh_command, posix=sys.platform != "win32"), "-x"]
        else:
            args = ["ssh", "-x"]

        if port:
            args.extend(["-p", str(port)])

        if key_filename:
            args.extend(["-i", str(key_filename)])

        if username:
            host = f"{username}@{host}"
        if host.startswith("-"):
            raise StrangeHostname(hostname=host)
        args.append(host)

        logger.debug("running %r", [*args, command])
        try:
            proc = subprocess.Popen(
                [*args, command],
                bufsize=0,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as exc:
            raise RemoteConnectionError(f"unable to run {args[0]}: {exc}") from exc
        return SubprocessWrapper(proc)


get_ssh_vendor = SubprocessSSHVendor


def _remote_error_from_stderr(lines: Optional[list[bytes]]) -> Exception:
    if lines is None:
        return HangupException()
    for line in lines:
        if line.startswith(b"ERROR: "):
            return RemoteConnectionError(
                line[len(b"ERROR: ") :].decode("utf-8", "replace")
            )
    return HangupException(lines)


def _wrap_os_errors(func: Callable[[int], bytes]) -> Callable[[int], bytes]:
    def wrapper(size: int) -> bytes:
        try:
            return func(size)
        except OSError as error:
            raise RemoteConnectionError(str(error)) from error

    return wrapper


class SSHUploadPackSession(UploadPackSession):
    """Fetch over SSH by running git-upload-pack on the remote host."""

    DEFAULT_ENCODING = "utf-8"

    def __init__(
        self,
        endpoint: Endpoint,
        vendor: Optional[SSHVendor] = None,
        config: Optional[Config] = None,
        key_filename: Optional[str] = None,
        ssh_command: Optional[str] = None,
    ) -> None:
        super().__init__(endpoint, config=config)
        self.key_filename = key_filename
        # Priority: ssh_command parameter, then env vars, then core.sshCommand config
        if ssh_command:
            self.ssh_command = ssh_command
        elif os.environ.get("GIT_SSH_COMMAND"):
            self.ssh_command = os.environ["GIT_SSH_COMMAND"]
        elif os.environ.get("GIT_SSH"):
            self.ssh_command = os.environ["GIT_SSH"]
        else:
            self.ssh_command = "ssh"
            if config is not None:
                try:
                    config_ssh_command = config.get((b"core",), b"sshCommand")
                except KeyError:
                    pass
                else:
                    if config_ssh_command:
                        self.ssh_command = config_ssh_command.decode()
        if vendor is not None:
            self.ssh_vendor = vendor
        else:
            self.ssh_vendor = get_ssh_vendor()
        self._proto: Optional[Protocol] = None

    def _connect(
        self,
    ) -> tuple[Protocol, Optional[Callable[[], list[bytes]]]]:
        path = self.endpoint.path
        if path.startswith("/~"):
            path = path[1:]
        argv = b"git-upload-pack '" + path.encode(self.DEFAULT_ENCODING) + b"'"
        kwargs = {}
        if self.key_filename is not None:
            kwargs["key_filename"] = self.key_filename
        con = self.ssh_vendor.run_command(
            self.endpoint.host,
            argv,
            port=self.endpoint.port,
            username=self.endpoint.username,
            ssh_command=self.ssh_command,
            **kwargs,
        )
        return (
            Protocol(con.read, con.write, con.close),
            getattr(con, "stderr_lines", None),
        )

    def upload_pack(self, request: FetchRequest) -> UploadPackResponse:
        proto, stderr_lines = self._connect()
        self._proto = proto
        try:
            try:
                refs, server_capabilities = read_pkt_refs(proto.read_pkt_seq())
            except HangupException as exc:
                lines = stderr_lines() if stderr_lines is not None else None
                raise _remote_error_from_stderr(lines) from exc
            _check_advertisement(request, refs, server_capabilities)
            _handle_upload_pack_head(proto, request)
            _handle_upload_pack_tail(proto)
        except BaseException:
            self.close()
            raise
        return UploadPackResponse(
            _wrap_os_errors(proto.read), self.close, server_capabilities
        )

    def close(self) -> None:
        proto, self._proto = self._proto, None
        if proto is not None:
            proto.close()


def default_user_agent_string() -> str:
    """Return the default user agent string for packscan."""
    # Start user agent with "git/", because GitHub requires this.
    return "git/packscan/{}".format(".".join([str(x) for x in packscan.__version__]))


def _urlmatch_http_sections(
    config: Config, url: Optional[str]
) -> Iterator[tuple[bytes, ...]]:
    """Yield http config sections matching the given URL.

    The global ``[http]`` section comes first, then ``[http "<prefix>"]``
    sections whose prefix matches the URL, shortest prefix first.
    """
    encoding = getattr(config, "encoding", None) or sys.getdefaultencoding()
    matching_sections: list[tuple[int, tuple[bytes, ...]]] = []
    for config_section in config.sections():
        if config_section[0] != b"http":
            continue
        if len(config_section) < 2:
            matching_sections.append((0, config_section))
        elif url is not None:
            config_url = config_section[1].decode(encoding).rstrip("/")
            if url == config_url or url.startswith(config_url + "/"):
                matching_sections.append((len(config_url), config_section))
    matching_sections.sort(key=lambda x: x[0])
    for _, section in matching_sections:
        yield section


def default_urllib3_manager(
    config: Optional[Config],
    pool_manager_cls: Optional[type] = None,
    proxy_manager_cls: Optional[type] = None,
    base_url: Optional[str] = None,
    timeout: Optional[float] = None,
    cert_reqs: Optional[str] = None,
) -> Union["urllib3.ProxyManager", "urllib3.PoolManager"]:
    """Return urllib3 connection pool manager.

    Honour detected proxy configurations.

    Args:
      config: `packscan.config.Config` instance with Git configuration.
      pool_manager_cls: Pool manager class to use
      proxy_manager_cls: Proxy manager class to use
      base_url: Base URL for proxy bypass checks
      timeout: Timeout for HTTP requests in seconds
      cert_reqs: SSL certificate requirements (e.g. "CERT_REQUIRED", "CERT_NONE")

    Returns:
      Either pool_manager_cls (defaults to `urllib3.ProxyManager`) instance for
      proxy configurations, proxy_manager_cls
      (defaults to `urllib3.PoolManager`) instance otherwise
    """
    import urllib3

    proxy_server: Optional[str] = None
    user_agent: Optional[str] = None
    ca_certs: Optional[str] = None
    ssl_verify: Optional[bool] = None
    headers: dict[str, str] = {}

    if config is not None:
        # Later (more specific) sections override earlier ones
        for section in _urlmatch_http_sections(config, base_url):
            try:
                proxy_server = config.get(section, b"proxy").decode("utf-8")
            except KeyError:
                pass
            try:
                user_agent = config.get(section, b"useragent").decode("utf-8")
            except KeyError:
                pass
            try:
                ssl_verify_value = config.get_boolean(section, b"sslVerify")
            except ValueError as e:
                logger.warning("Ignoring invalid http.sslVerify value: %s", e)
            else:
                if ssl_verify_value is not None:
                    ssl_verify = ssl_verify_value
            try:
                ca_certs = config.get(section, b"sslCAInfo").decode("utf-8")
            except KeyError:
                pass
            try:
                timeout_bytes = config.get(section, b"timeout")
            except KeyError:
                pass
            else:
                if timeout is None:
                    timeout = float(timeout_bytes.decode("utf-8"))

    if proxy_server is None:
        for proxyname in ("https_proxy", "http_proxy", "all_proxy"):
            proxy_server = os.environ.get(proxyname)
            if proxy_server:
                break

    if proxy_server:
        if check_for_proxy_bypass(base_url):
            proxy_server = None

    if user_agent is None:
        user_agent = default_user_agent_string()
    headers["User-agent"] = user_agent

    if config is not None:
        for section in _urlmatch_http_sections(config, base_url):
            try:
                extra_headers = list(config.get_multivar(section, b"extraHeader"))
            except KeyError:
                continue
            for extra_header in extra_headers:
                if b": " not in extra_header:
                    logger.warning(
                        "Ignoring invalid http.extraHeader value %r (missing ': ' separator)",
                        extra_header,
                    )
                    continue
                header_name, header_value = extra_header.split(b": ", 1)
                try:
                    headers[header_name.decode("utf-8")] = header_value.decode("utf-8")
                except UnicodeDecodeError as e:
                    logger.warning(
                        "Ignoring http.extraHeader with invalid UTF-8: %s", e
                    )

    kwargs: dict[str, Union[str, float, None]] = {
        "ca_certs": ca_certs,
    }
    if timeout is not None:
        kwargs["timeout"] = timeout

    if cert_reqs is not None:
        kwargs["cert_reqs"] = cert_reqs
    elif ssl_verify is False:
        kwargs["cert_reqs"] = "CERT_NONE"
    else:
        kwargs["cert_reqs"] = "CERT_REQUIRED"

    manager: Union[urllib3.ProxyManager, urllib3.PoolManager]
    if proxy_server:
        if proxy_manager_cls is None:
            proxy_manager_cls = urllib3.ProxyManager
        proxy_server_url = urlparse(proxy_server)
        if proxy_server_url.username is not None:
            proxy_headers = urllib3.make_headers(
                proxy_basic_auth=f"{proxy_server_url.username}:{proxy_server_url.password or ''}"
            )
        else:
            proxy_headers = {}
        manager = proxy_manager_cls(
            proxy_server, proxy_headers=proxy_headers, headers=headers, **kwargs
        )
    else:
        if pool_manager_cls is None:
            pool_manager_cls = urllib3.PoolManager
        manager = pool_manager_cls(headers=headers, **kwargs)

    return manager


def check_for_proxy_bypass(base_url: Optional[str]) -> bool:
    """Check if proxy should be bypassed for the given URL."""
    if not base_url:
        return False
    no_proxy_str = os.environ.get("no_proxy")
    if not no_proxy_str:
        return False
    # Follows curl: https://curl.se/libcurl/c/CURLOPT_NOPROXY.html
    hostname = urlparse(base_url).hostname
    if not hostname:
        return False

    import ipaddress

    try:
        hostname_ip = ipaddress.ip_address(hostname)
    except ValueError:
        hostname_ip = None

    for no_proxy_value in no_proxy_str.split(","):
        no_proxy_value = no_proxy_value.strip().lower().lstrip(".")
        if not no_proxy_value:
            continue
        if hostname_ip:
            try:
                no_proxy_value_network = ipaddress.ip_network(
                    no_proxy_value, strict=False
                )
            except ValueError:
                no_proxy_value_network = None
            if no_proxy_value_network and hostname_ip in no_proxy_value_network:
                return True
        if no_proxy_value == "*":
            return True
        if hostname == no_proxy_value:
            return True
        # Only match complete domains
        if hostname.endswith("." + no_proxy_value):
            return True
    return False


def _wrap_urllib3_exceptions(
    func: Callable[[int], bytes],
) -> Callable[[int], bytes]:
    from urllib3.exceptions import HTTPError

    def wrapper(size: int) -> bytes:
        try:
            return func(size)
        except HTTPError as error:
            raise RemoteConnectionError(str(error)) from error

    return wrapper


class HttpUploadPackSession(UploadPackSession):
    """Fetch over the smart HTTP protocol using urllib3."""

    def __init__(
        self,
        endpoint: Endpoint,
        pool_manager: Optional["urllib3.PoolManager"] = None,
        config: Optional[Config] = None,
        timeout: Optional[float] = None,
    ) -> None:
        super().__init__(endpoint, config=config)
        self._base_url = endpoint.url().rstrip("/") + "/"
        self._timeout = timeout
        self._owns_pool_manager = pool_manager is None
        if pool_manager is None:
            self.pool_manager = default_urllib3_manager(
                config, base_url=self._base_url, timeout=timeout
            )
        else:
            self.pool_manager = pool_manager

        if endpoint.username is not None:
            # No escaping needed: ":" is not allowed in username:
            # https://tools.ietf.org/html/rfc2617#section-2
            credentials = f"{endpoint.username}:{endpoint.password or ''}"
            import urllib3.util

            basic_auth = urllib3.util.make_headers(basic_auth=credentials)
            self.pool_manager.headers.update(basic_auth)  # type: ignore

        self._responses: list["HTTPResponse"] = []

    def _http_request(
        self,
        url: str,
        headers: Optional[dict[str, str]] = None,
        data: Optional[bytes] = None,
    ) -> tuple["HTTPResponse", Callable[[int], bytes]]:
        """Perform HTTP request.

        Returns:
          Tuple (response, read), where response is an urllib3
          response object with additional content_type and
          redirect_location properties, and read is a consumable read
          method for the response data.

        Raises:
          RemoteConnectionError: for network failures and unexpected statuses
          NotGitRepository: for a 404
          HTTPUnauthorized: for a 401 or 407
        """
        import urllib3.exceptions

        req_headers = dict(self.pool_manager.headers)
        if headers is not None:
            req_headers.update(headers)
        req_headers["Pragma"] = "no-cache"

        request_kwargs: dict[str, object] = {
            "headers": req_headers,
            "preload_content": False,
        }
        if self._timeout is not None:
            request_kwargs["timeout"] = self._timeout

        logger.debug("%s %s", "GET" if data is None else "POST", url)
        try:
            if data is None:
                resp = self.pool_manager.request("GET", url, **request_kwargs)  # type: ignore[arg-type]
            else:
                request_kwargs["body"] = data
                resp = self.pool_manager.request("POST", url, **request_kwargs)  # type: ignore[arg-type]
        except urllib3.exceptions.HTTPError as e:
            raise RemoteConnectionError(str(e)) from e

        if resp.status != 200:
            resp.close()
            if resp.status == 404:
                raise NotGitRepository(self.endpoint.url())
            if resp.status == 401:
                raise HTTPUnauthorized(resp.headers.get("WWW-Authenticate"), url)
            if resp.status == 407:
                raise HTTPUnauthorized(resp.headers.get("Proxy-Authenticate"), url)
            raise RemoteConnectionError(f"unexpected http resp {resp.status} for {url}")

        resp.content_type = resp.headers.get("Content-Type")  # type: ignore[attr-defined]
        resp_url = resp.geturl()
        resp.redirect_location = resp_url if resp_url and resp_url != url else ""  # type: ignore[attr-defined]
        return resp, _wrap_urllib3_exceptions(resp.read)

    def _discover_references(self) -> tuple[dict[bytes, bytes], set[bytes]]:
        tail = f"info/refs?service={UPLOAD_PACK_SERVICE}"
        url = urljoin(self._base_url, tail)
        resp, read = self._http_request(url, {"Accept": "*/*"})
        try:
            if resp.redirect_location:  # type: ignore[attr-defined]
                # Something changed (redirect!), so let's update the base URL
                if not resp.redirect_location.endswith(tail):  # type: ignore[attr-defined]
                    raise RemoteConnectionError(
                        f"Redirected from URL {url} to URL {resp.redirect_location} without {tail}"  # type: ignore[attr-defined]
                    )
                self._base_url = urljoin(url, resp.redirect_location[: -len(tail)])  # type: ignore[attr-defined]
            content_type = resp.content_type  # type: ignore[attr-defined]
            if content_type is None or not content_type.startswith("application/x-git-"):
                raise RemoteConnectionError(
                    f"{self.endpoint.url()} does not speak the smart HTTP protocol "
                    f"(content type {content_type!r})"
                )
            proto = Protocol(read, None)
            try:
                [pkt] = list(proto.read_pkt_seq())
            except ValueError as exc:
                raise GitProtocolError("unexpected number of packets received") from exc
            if pkt.rstrip(b"\n") != b"# service=" + UPLOAD_PACK_SERVICE.encode("ascii"):
                raise GitProtocolError(f"unexpected first line {pkt!r} from smart server")
            return read_pkt_refs(proto.read_pkt_seq())
        finally:
            resp.close()

    def _smart_request(self, data: bytes) -> tuple["HTTPResponse", Callable[[int], bytes]]:
        """Send a 'smart' HTTP request.

        This is a simple wrapper around _http_request that sets
        a couple of extra headers.
        """
        url = urljoin(self._base_url, UPLOAD_PACK_SERVICE)
        result_content_type = f"application/x-{UPLOAD_PACK_SERVICE}-result"
        headers = {
            "Content-Type": f"application/x-{UPLOAD_PACK_SERVICE}-request",
            "Accept": result_content_type,
            "Content-Length": str(len(data)),
        }
        resp, read = self._http_request(url, headers, data)
        if (
            not resp.content_type  # type: ignore[attr-defined]
            or resp.content_type.split(";")[0] != result_content_type  # type: ignore[attr-defined]
        ):
            resp.close()
            raise RemoteConnectionError(
                f"Invalid content-type from server: {resp.content_type}"  # type: ignore[attr-defined]
            )
        return resp, read

    def upload_pack(self, request: FetchRequest) -> UploadPackResponse:
        try:
            refs, server_capabilities = self._discover_references()
            _check_advertisement(request, refs, server_capabilities)
            resp, read = self._smart_request(request.serialize())
            self._responses.append(resp)
            _handle_upload_pack_tail(Protocol(read, None))
        except BaseException:
            self.close()
            raise
        return UploadPackResponse(read, resp.close, server_capabilities)

    def close(self) -> None:
        responses, self._responses = self._responses, []
        for resp in responses:
            resp.close()
        if self._owns_pool_manager:
            self.pool_manager.clear()


def get_session(
    url: Union[str, Endpoint],
    config: Optional[Config] = None,
    pool_manager: Optional["urllib3.PoolManager"] = None,
    ssh_vendor: Optional[SSHVendor] = None,
    timeout: Optional[float] = None,
) -> UploadPackSession:
    """Open an upload-pack session for a repository URL.

    Args:
      url: Repository URL or an already parsed Endpoint
      config: Git configuration; no configuration is read if None
      pool_manager: urllib3 pool manager for HTTP(S)
      ssh_vendor: SSH implementation for ssh URLs
      timeout: HTTP timeout in seconds
    Raises:
      EndpointError: if the URL cannot be used
    """
    endpoint = url if isinstance(url, Endpoint) else parse_endpoint(url)
    if endpoint.scheme in ("ssh", "git+ssh"):
        return SSHUploadPackSession(endpoint, vendor=ssh_vendor, config=config)
    return HttpUploadPackSession(
        endpoint, pool_manager=pool_manager, config=config, timeout=timeout
    )
