import shutil
import sys

from yt_dlp.version import __version__ as ytdlp_version

from config.settings import APP_VERSION, YTDLP_BIN


def get_runtime_info(executable=None):
    """Versions and tool availability reported by health checks."""
    tool = executable or YTDLP_BIN
    tool_path = shutil.which(tool)
    return {
        "app_version": APP_VERSION,
        "python_version": sys.version.split()[0],
        "yt_dlp_version": ytdlp_version,
        "ytdlp_executable": tool_path,
        "tool_available": tool_path is not None,
    }
