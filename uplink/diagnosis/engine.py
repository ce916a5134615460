"""
Error Diagnosis Engine.

Turns the raw output and exit code of a failed encoder (or server) process
into a Diagnosis. Classification order:

1. Well-known exit codes short-circuit to a fixed category.
2. Ordered pattern matchers over the combined output; first match wins.
   Connection and port problems are checked before credentials, credentials
   before devices, devices before codecs and formats, and those before the
   generic resource and timeout patterns.
3. Generic fallback: output without any error marker is treated as an
   unreported connection failure, anything else is "unknown".

Wording follows DiagnosisContext.role: encoder failures point at the stream
and its device, server failures at icecast.xml and the server log directory.

The engine is pure: no I/O, no shared state.
"""

import re
import sys
from dataclasses import dataclass
from typing import Callable, Dict, Optional, Pattern, Tuple, Union

from uplink.diagnosis.model import ROLE_SERVER, Category, Diagnosis, DiagnosisContext, Severity

DEFAULT_PORT = 8000
EXCERPT_CHARS = 500

_ERROR_MARKERS = ("error", "failed", "cannot", "denied", "invalid", "unable")

# Exit codes recognised on every platform (Windows codes reported unsigned)
_COMMON_EXIT_CODES: Dict[int, Category] = {
    4294967291: Category.CONNECTION,      # -5: connection refused / access denied
    2812791304: Category.PROCESS_CRASH,   # 0xA7F00008
    3221225477: Category.PROCESS_CRASH,   # 0xC0000005 access violation
}

_WINDOWS_EXIT_CODES: Dict[int, Category] = {
    -5: Category.CONNECTION,
    -1482175992: Category.PROCESS_CRASH,  # 0xA7F00008 signed
    -1073741819: Category.PROCESS_CRASH,  # 0xC0000005 signed
}

# subprocess reports death-by-signal as a negative return code
_POSIX_EXIT_CODES: Dict[int, Category] = {
    -4: Category.PROCESS_CRASH,   # SIGILL
    -6: Category.PROCESS_CRASH,   # SIGABRT
    -7: Category.PROCESS_CRASH,   # SIGBUS
    -8: Category.PROCESS_CRASH,   # SIGFPE
    -11: Category.PROCESS_CRASH,  # SIGSEGV
}


def _compile(*patterns: str) -> Tuple[Pattern, ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


@dataclass(frozen=True)
class _Matcher:
    category: Category
    patterns: Tuple[Pattern, ...]

    def matches(self, text: str) -> bool:
        return any(p.search(text) for p in self.patterns)


# Order matters: first match wins
_MATCHERS: Tuple[_Matcher, ...] = (
    _Matcher(Category.CONNECTION, _compile(
        r"connection refused",
        r"error number -138",
        r"could not connect",
        r"connection failed",
        r"econnrefused",
        r"network is unreachable",
    )),
    _Matcher(Category.PORT_CONFLICT, _compile(
        r"address already in use",
        r"eaddrinuse",
        r"bind failed",
        r"\bport\b.*\bin use\b",
    )),
    _Matcher(Category.AUTHENTICATION, _compile(
        r"401 unauthorized",
        r"authentication failed",
        r"invalid password",
        r"access denied",
        r"permission denied",
        r"wrong password",
        r"source client not accepted",
    )),
    _Matcher(Category.MOUNT_POINT, _compile(
        r"mount ?point.*(?:already in use|busy)",
        r"stream already exists",
        r"source limit reached",
        r"too many sources",
    )),
    _Matcher(Category.DEVICE_NOT_FOUND, _compile(
        r"could not find audio (?:only )?device",
        r"no such device",
        r"device not found",
        r"cannot find.*device",
        r"immediate exit requested",
    )),
    _Matcher(Category.DEVICE_BUSY, _compile(
        r"device or resource busy",
        r"device is being used",
        r"exclusive access",
        r"cannot open.*device",
        r"access to.*denied",
    )),
    _Matcher(Category.VIRTUAL_AUDIO_DEVICE, _compile(
        r"vb-audio",
        r"virtual cable",
        r"voicemeeter",
        r"cable output",
    )),
    _Matcher(Category.OS_AUDIO_SUBSYSTEM, _compile(
        r"directshow",
        r"could not set video options",
        r"could not enumerate.*devices",
        r"audio subsystem",
        r"coreaudio.*(?:error|failed)",
    )),
    _Matcher(Category.CODEC_UNAVAILABLE, _compile(
        r"unknown encoder",
        r"encoder.*not found",
        r"codec not found",
        r"no codec could be found",
    )),
    _Matcher(Category.FORMAT_UNSUPPORTED, _compile(
        r"unknown format",
        r"invalid format",
        r"unsupported format",
        r"format not supported",
        r"not a suitable output format",
    )),
    _Matcher(Category.RESOURCE_EXHAUSTION, _compile(
        r"out of memory",
        r"cannot allocate",
        r"memory allocation failed",
        r"insufficient.*memory",
    )),
    _Matcher(Category.TIMEOUT, _compile(
        r"timed out",
        r"\btimeout\b",
        r"operation.*timeout",
    )),
)


def well_known_exit_codes(platform: Optional[str] = None) -> Dict[int, Category]:
    """
    Exit codes that short-circuit classification on the given platform.

    Args:
        platform: sys.platform-style name (defaults to the running platform)

    Returns:
        Mapping of exit code to Category
    """
    table = dict(_COMMON_EXIT_CODES)
    table.update(_WINDOWS_EXIT_CODES if _is_windows(platform) else _POSIX_EXIT_CODES)
    return table


def diagnose(
    output: Optional[str],
    exit_code: Optional[int] = None,
    context: Optional[DiagnosisContext] = None,
) -> Diagnosis:
    """
    Classify a failed process run.

    Args:
        output: Combined stdout/stderr text of the process (may be empty)
        exit_code: Process exit code, or None if unknown
        context: Values to weave into the explanation (port, device, mount...)

    Returns:
        Diagnosis; never raises for any input
    """
    context = context or DiagnosisContext()
    output = output or ""

    if exit_code is not None:
        category = well_known_exit_codes(context.platform).get(exit_code)
        if category is not None:
            return build_diagnosis(category, context, output, exit_code)

    for matcher in _MATCHERS:
        if matcher.matches(output):
            return build_diagnosis(matcher.category, context, output, exit_code)

    if not _has_error_markers(output):
        return _finish(Category.CONNECTION, _silent_exit(context), context, output, exit_code)

    return build_diagnosis(Category.UNKNOWN, context, output, exit_code)


def diagnose_spawn_failure(
    error: Union[BaseException, str],
    context: Optional[DiagnosisContext] = None,
) -> Diagnosis:
    """Diagnosis for a process that could not be launched at all."""
    context = context or DiagnosisContext()
    if _is_server(context):
        executable, setting = context.executable or "icecast", "UPLINK_ICECAST_EXE"
    else:
        executable, setting = context.executable or "ffmpeg", "UPLINK_FFMPEG_PATH"
    text = _Text(
        Severity.CRITICAL,
        "Process Could Not Be Launched",
        f"The operating system refused to start {executable}: {error}",
        (
            f"{executable} is not installed or not on PATH",
            "The executable is not marked as runnable for this user",
            "Antivirus or application control blocked the launch",
        ),
        (
            f"Run `{executable} -version` in a terminal to confirm it starts",
            f"Configure the full path to {executable} with {setting}",
            "Check file permissions and any security software logs",
        ),
    )
    return _finish(Category.PROCESS_CRASH, text, context, str(error), None)


def build_diagnosis(
    category: Category,
    context: Optional[DiagnosisContext] = None,
    output: str = "",
    exit_code: Optional[int] = None,
) -> Diagnosis:
    """
    Build the Diagnosis for a known category.

    Used directly for failures detected before any process runs (device
    already reserved, server not running, source limit reached).
    """
    context = context or DiagnosisContext()
    text = _BUILDERS[category](context, output or "")
    return _finish(category, text, context, output or "", exit_code)


def format_message(diagnosis: Diagnosis) -> str:
    """Full multi-line rendering for logs and detail views."""
    lines = [diagnosis.title, "", diagnosis.description, ""]
    if diagnosis.causes:
        lines.append("Possible causes:")
        lines.extend(f"  - {c}" for c in diagnosis.causes)
        lines.append("")
    if diagnosis.remediation:
        lines.append("What to do:")
        lines.extend(f"  {i}. {s}" for i, s in enumerate(diagnosis.remediation, 1))
        lines.append("")
    lines.append("Technical details:")
    lines.extend(f"  {line}" for line in diagnosis.technical_details.splitlines())
    return "\n".join(lines)


def format_notification(diagnosis: Diagnosis) -> str:
    """Short rendering: title, description and the top three remediation steps."""
    lines = [diagnosis.title, diagnosis.description]
    if diagnosis.remediation:
        lines.append("Quick fixes:")
        lines.extend(f"  {i}. {s}" for i, s in enumerate(diagnosis.remediation[:3], 1))
    return "\n".join(lines)


# --- helpers ---------------------------------------------------------------


@dataclass(frozen=True)
class _Text:
    severity: Severity
    title: str
    description: str
    causes: Tuple[str, ...]
    remediation: Tuple[str, ...]
    details: Tuple[str, ...] = ()


def _is_windows(platform: Optional[str]) -> bool:
    return (platform or sys.platform).startswith("win")


def _is_macos(platform: Optional[str]) -> bool:
    return (platform or sys.platform) == "darwin"


def _has_error_markers(output: str) -> bool:
    lowered = output.lower()
    return any(marker in lowered for marker in _ERROR_MARKERS)


def _excerpt(output: str) -> str:
    text = output.strip()
    if len(text) <= EXCERPT_CHARS:
        return text
    return "..." + text[-EXCERPT_CHARS:]


def _finish(
    category: Category,
    text: _Text,
    context: DiagnosisContext,
    output: str,
    exit_code: Optional[int],
) -> Diagnosis:
    details = [f"Exit code: {exit_code if exit_code is not None else 'n/a'}"]
    details.extend(text.details)
    details.append(f"Output excerpt: {_excerpt(output) or '(no output)'}")
    return Diagnosis(
        category=category,
        severity=text.severity,
        title=text.title,
        description=text.description,
        causes=text.causes,
        remediation=text.remediation,
        technical_details="\n".join(details),
        exit_code=exit_code,
        context=context,
    )


def _port(context: DiagnosisContext) -> int:
    return context.port or DEFAULT_PORT


def _device(context: DiagnosisContext) -> str:
    return context.device_name or context.device_id or "the audio device"


def _config_path(context: DiagnosisContext) -> str:
    return context.config_path or "icecast.xml"


def _is_server(context: DiagnosisContext) -> bool:
    return context.role == ROLE_SERVER


def _process_label(context: DiagnosisContext) -> str:
    return "the Icecast server" if _is_server(context) else "the encoder"


def _port_lookup_command(port: int, platform: Optional[str]) -> str:
    if _is_windows(platform):
        return f'netstat -ano | findstr ":{port}"'
    if _is_macos(platform):
        return f"lsof -nP -iTCP:{port} -sTCP:LISTEN"
    return f"ss -ltnp 'sport = :{port}'"


def _sound_settings(platform: Optional[str]) -> str:
    if _is_windows(platform):
        return "Windows Sound settings > Recording devices"
    if _is_macos(platform):
        return "System Settings > Sound > Input (or Audio MIDI Setup)"
    return "`arecord -l` and your mixer (alsamixer or pavucontrol)"


def _device_listing_command(platform: Optional[str]) -> str:
    if _is_windows(platform):
        return "ffmpeg -hide_banner -list_devices true -f dshow -i dummy"
    if _is_macos(platform):
        return 'ffmpeg -hide_banner -f avfoundation -list_devices true -i ""'
    return "arecord -l"


def _encoders_command(platform: Optional[str]) -> str:
    if _is_windows(platform):
        return "ffmpeg -hide_banner -encoders | findstr /i \"mp3 aac vorbis\""
    return "ffmpeg -hide_banner -encoders | grep -Ei 'mp3|aac|vorbis'"


def _missing_codec(context: DiagnosisContext, output: str) -> str:
    match = re.search(r"unknown encoder '([^']+)'", output, re.IGNORECASE)
    name = (match.group(1) if match else (context.format_name or "")).lower()
    if "mp3" in name:
        return "MP3 (libmp3lame)"
    if "aac" in name:
        return "AAC"
    if "vorbis" in name or "ogg" in name:
        return "Vorbis/OGG (libvorbis)"
    return name or "unknown codec"


def _server_failure(context: DiagnosisContext, title: str, description: str) -> _Text:
    port = _port(context)
    executable = context.executable or "icecast"
    log_dir = context.log_dir or "the Icecast log directory"
    return _Text(
        Severity.CRITICAL,
        title,
        description,
        (
            f"{_config_path(context)} contains a value the server rejects",
            f"{log_dir} is missing or not writable",
            f"Port {port} is already taken by another program",
        ),
        (
            f"Read error.log in {log_dir} for the server's own message",
            f"Run `{executable} -c {_config_path(context)}` in a terminal to see the startup error",
            f"Check what is listening on port {port}: {_port_lookup_command(port, context.platform)}",
            "Fix the configuration, then start the server again",
        ),
        (f"Config: {_config_path(context)}", f"Log directory: {log_dir}"),
    )


# --- per-category builders --------------------------------------------------


def _connection(context: DiagnosisContext, output: str) -> _Text:
    port = _port(context)
    if _is_server(context):
        return _server_failure(
            context,
            "Icecast Server Network Error",
            f"The Icecast server reported a network error while starting on port {port}.",
        )
    host = context.host or "localhost"
    return _Text(
        Severity.CRITICAL,
        "Cannot Connect to Icecast Server",
        f"The encoder could not open a connection to the Icecast server at {host}:{port}.",
        (
            "The Icecast server is not running or crashed after starting",
            f"Port {port} is blocked or used by another application",
            "A firewall is rejecting the connection",
            "The configured Icecast host or port is wrong",
        ),
        (
            "Check that the server is reported as running, and start it if not",
            f"Check what is listening on port {port}: {_port_lookup_command(port, context.platform)}",
            f"If another application owns port {port}, stop it or change <port> in {_config_path(context)}",
            "Restart the Icecast server, then start the stream again",
            f"Allow port {port} through the local firewall",
        ),
        (f"Target: icecast://source:***@{host}:{port}{context.mount or '/'}",),
    )


def _silent_exit(context: DiagnosisContext) -> _Text:
    port = _port(context)
    if _is_server(context):
        return _server_failure(
            context,
            "Icecast Server Exited Without Reporting an Error",
            "The Icecast server stopped without printing any error. Its own log usually says why.",
        )
    return _Text(
        Severity.CRITICAL,
        "Encoder Exited Without Reporting an Error",
        f"The encoder stopped without printing any error. This almost always means it could "
        f"not keep a connection to the Icecast server on port {port}.",
        (
            "The Icecast server is not running or dropped the connection",
            f"Port {port} is owned by a different program",
        ),
        (
            "Check that the server is reported as running, and restart it",
            f"Check what is listening on port {port}: {_port_lookup_command(port, context.platform)}",
            "Start the stream again once the server is reachable",
        ),
    )


def _port_conflict(context: DiagnosisContext, output: str) -> _Text:
    port = _port(context)
    kill_hint = ("taskkill /IM icecast.exe /F" if _is_windows(context.platform)
                 else "pkill -x icecast (or icecast2)")
    return _Text(
        Severity.CRITICAL,
        "Port Already In Use",
        f"Port {port} is already used by another application.",
        (
            "Another Icecast instance is already running",
            "A previous Icecast process did not shut down",
            "A different server (for example a container runtime) bound the port",
        ),
        (
            f"Find the owner of the port: {_port_lookup_command(port, context.platform)}",
            f"If it is a leftover Icecast process, end it: {kill_hint}",
            f"Or change <port> in {_config_path(context)} and UPLINK_DEFAULT_PORT to a free port",
            "Restart the Icecast server after the change",
        ),
        (f"Port: {port}",),
    )


def _authentication(context: DiagnosisContext, output: str) -> _Text:
    return _Text(
        Severity.CRITICAL,
        "Authentication Failed",
        "The Icecast server rejected the encoder's source credentials.",
        (
            f"The source password does not match <source-password> in {_config_path(context)}",
            "The configuration file was edited but the server was not restarted",
        ),
        (
            f"Check <authentication><source-password> in {_config_path(context)}",
            "Restart the Icecast server after any password change",
            "Start the stream again",
        ),
        ("Expected username: source",),
    )


def _mount_point(context: DiagnosisContext, output: str) -> _Text:
    limit = context.source_limit
    active = context.active_sources
    if limit is not None:
        description = (f"The Icecast server allows {limit} concurrent source(s)"
                       + (f" and {active} are already in use." if active is not None else "."))
    else:
        description = "The mount point is taken or the server's source limit was reached."
    mount = context.mount or "the mount point"
    return _Text(
        Severity.WARNING,
        "Stream Limit Reached",
        description,
        (
            "The server's <limits><sources> value is lower than the number of streams",
            f"A previous encoder is still connected to {mount}",
        ),
        (
            "Stop a running stream before starting another",
            f"Raise <limits><sources> in {_config_path(context)}",
            "Restart the Icecast server to apply the change or to clear stale mounts",
        ),
        (f"Source limit: {limit if limit is not None else 'unknown'}",),
    )


def _device_not_found(context: DiagnosisContext, output: str) -> _Text:
    device = _device(context)
    return _Text(
        Severity.CRITICAL,
        "Audio Device Not Found",
        f'The audio device "{device}" is not available to the encoder.',
        (
            "The device was unplugged or disabled",
            "The device driver was updated or crashed",
            "The device was renamed by the operating system",
        ),
        (
            f"Refresh the device list; it can also be checked with: {_device_listing_command(context.platform)}",
            f"Confirm the device is enabled in {_sound_settings(context.platform)}",
            "Reconnect the device, or pick a different one for this stream",
        ),
        (f"Device ID: {context.device_id or 'n/a'}",),
    )


def _device_busy(context: DiagnosisContext, output: str) -> _Text:
    device = _device(context)
    if context.holder:
        description = f'The audio device "{device}" is already used by stream "{context.holder}".'
        causes = (f'Stream "{context.holder}" is capturing from the same device',)
        remediation = (
            f'Stop stream "{context.holder}" first',
            "Or choose a different device for this stream",
        )
    else:
        description = f'The audio device "{device}" is held by another application.'
        causes = (
            "A conferencing or recording application has exclusive access",
            "A previous encoder process is still running",
        )
        remediation = (
            "Close other applications that use the microphone or line input",
            "End stray ffmpeg processes left from earlier runs",
            "Try a different device, or reboot to release device locks",
        )
    return _Text(Severity.WARNING, "Audio Device In Use", description, causes, remediation,
                 (f"Device ID: {context.device_id or 'n/a'}",))


def _virtual_audio_device(context: DiagnosisContext, output: str) -> _Text:
    lowered = output.lower()
    if "voicemeeter" in lowered:
        kind = "VoiceMeeter"
    elif "cable" in lowered or "vb-audio" in lowered:
        kind = "VB-Audio Virtual Cable"
    else:
        kind = "Virtual Audio Device"
    return _Text(
        Severity.WARNING,
        f"{kind} Issue",
        f'The virtual audio device "{_device(context)}" did not deliver audio.',
        (
            "The virtual audio driver needs a restart",
            "The mixing application behind the virtual device is not running",
            "The driver was just installed and needs a reboot",
        ),
        (
            f"Restart the {kind} software (or reboot to reload its driver)",
            f"Check the device in {_sound_settings(context.platform)}",
            "Try a physical input to confirm the rest of the chain works",
        ),
        (f"Device type: {kind}",),
    )


def _os_audio_subsystem(context: DiagnosisContext, output: str) -> _Text:
    if _is_windows(context.platform):
        subsystem = "Windows audio (DirectShow)"
        remediation = (
            "Restart the \"Windows Audio\" service from services.msc",
            "Update the audio driver from Device Manager",
            "Reboot the computer",
        )
    elif _is_macos(context.platform):
        subsystem = "macOS audio (AVFoundation/CoreAudio)"
        remediation = (
            "Grant microphone access to the terminal or service in Privacy & Security",
            "Restart CoreAudio: sudo killall coreaudiod",
            "Reboot the computer",
        )
    else:
        subsystem = "Linux audio (ALSA)"
        remediation = (
            "Check the device with: arecord -l",
            "Make sure the service user is in the 'audio' group",
            "Restart the sound server or reboot the computer",
        )
    return _Text(
        Severity.CRITICAL,
        "Audio System Error",
        f"The encoder could not use the {subsystem} subsystem.",
        (
            "The operating system's audio service is not running",
            "The audio driver is incompatible or was just updated",
        ),
        remediation,
        (f"Subsystem: {subsystem}",),
    )


def _codec_unavailable(context: DiagnosisContext, output: str) -> _Text:
    codec = _missing_codec(context, output)
    return _Text(
        Severity.CRITICAL,
        "Audio Codec Not Available",
        f"The installed ffmpeg build does not include the {codec} encoder.",
        (
            "ffmpeg was built without this codec",
            "A minimal or distribution build of ffmpeg is installed",
        ),
        (
            "Let the stream fall back to another format, or remove this format from its list",
            f"Check which encoders are available: {_encoders_command(context.platform)}",
            "Install a full ffmpeg build that includes libmp3lame and libvorbis",
        ),
        (f"Missing codec: {codec}",),
    )


def _format_unsupported(context: DiagnosisContext, output: str) -> _Text:
    fmt = context.format_name or "the requested format"
    return _Text(
        Severity.WARNING,
        "Unsupported Format",
        f"The encoder cannot produce {fmt}.",
        (
            "The stream is configured with a format this ffmpeg build cannot write",
            "The Icecast mount expects a different format",
        ),
        (
            "Use one of the supported formats: mp3, aac, ogg",
            "Check available muxers: ffmpeg -hide_banner -formats",
        ),
        ("Supported formats: mp3 (libmp3lame), aac (adts), ogg (libvorbis)",),
    )


def _resource_exhaustion(context: DiagnosisContext, output: str) -> _Text:
    return _Text(
        Severity.CRITICAL,
        "System Resource Error",
        f"The system ran out of resources while starting {_process_label(context)}.",
        (
            "The system is low on free memory",
            "Too many streams are running at the same time",
        ),
        (
            "Close unneeded applications to free memory",
            "Reduce the number of concurrent streams or their bitrate",
            "Restart the computer if memory stays exhausted",
        ),
    )


def _timeout(context: DiagnosisContext, output: str) -> _Text:
    port = _port(context)
    host = context.host or "localhost"
    return _Text(
        Severity.WARNING,
        "Connection Timeout",
        f"The connection to the Icecast server at {host}:{port} timed out.",
        (
            "The Icecast server is overloaded or still starting",
            "A firewall drops the connection instead of refusing it",
        ),
        (
            "Wait a few seconds and start the stream again",
            f"Check that http://{host}:{port}/ answers in a browser",
            "Restart the Icecast server",
        ),
    )


def _process_crash(context: DiagnosisContext, output: str) -> _Text:
    if _is_server(context):
        return _server_failure(
            context,
            "Icecast Server Crashed",
            "The Icecast server process crashed instead of exiting normally.",
        )
    executable = context.executable or "ffmpeg"
    if _is_windows(context.platform):
        remediation = (
            "Try a different audio device to isolate a driver problem",
            "Reinstall a full ffmpeg build",
            "Install or repair the Visual C++ Redistributable",
            "Check Event Viewer > Windows Logs > Application for the crash record",
        )
    else:
        remediation = (
            "Try a different audio device to isolate a driver problem",
            f"Run `{executable} -version` to confirm the installation works",
            "Reinstall ffmpeg from your package manager",
            "Check the system journal (journalctl or Console.app) for the crash record",
        )
    return _Text(
        Severity.CRITICAL,
        "Encoder Process Crashed",
        "The encoder process crashed instead of exiting normally.",
        (
            "An audio driver is incompatible with ffmpeg",
            "The ffmpeg installation is damaged",
            "Security software terminated the process",
        ),
        remediation,
    )


def _unknown(context: DiagnosisContext, output: str) -> _Text:
    if _is_server(context):
        return _server_failure(
            context,
            "Icecast Server Failed to Start",
            "The Icecast server reported an error that could not be classified. The output "
            "excerpt below shows what it printed.",
        )
    return _Text(
        Severity.WARNING,
        "Stream Failed to Start",
        "The encoder reported an error that could not be classified. The output excerpt below "
        "shows what it printed.",
        (
            "The Icecast server may not be reachable",
            "The audio device may be unavailable",
        ),
        (
            "Check that the Icecast server is running",
            "Refresh the device list and try a different device",
            "Read the output excerpt and the service log for the exact message",
        ),
    )


_BUILDERS: Dict[Category, Callable[[DiagnosisContext, str], _Text]] = {
    Category.CONNECTION: _connection,
    Category.PORT_CONFLICT: _port_conflict,
    Category.AUTHENTICATION: _authentication,
    Category.MOUNT_POINT: _mount_point,
    Category.DEVICE_NOT_FOUND: _device_not_found,
    Category.DEVICE_BUSY: _device_busy,
    Category.VIRTUAL_AUDIO_DEVICE: _virtual_audio_device,
    Category.OS_AUDIO_SUBSYSTEM: _os_audio_subsystem,
    Category.CODEC_UNAVAILABLE: _codec_unavailable,
    Category.FORMAT_UNSUPPORTED: _format_unsupported,
    Category.RESOURCE_EXHAUSTION: _resource_exhaustion,
    Category.TIMEOUT: _timeout,
    Category.PROCESS_CRASH: _process_crash,
    Category.UNKNOWN: _unknown,
}
