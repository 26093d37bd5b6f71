"""Typed bindings for the /user, /permission, /file, /dir and /meta endpoints.

Every method builds the mandatory parameters for its call and passes the
caller's ``Params`` (or ``NO_PARAMS``) through. Check the HiDrive API reference
for the optional parameters each call understands.

Almost all calls identify files or directories by ``pid`` (object ID) and
``path``; see ``Identifier``.
"""
import logging
from typing import TYPE_CHECKING, Any, Optional, Sequence, Tuple

from .helpers import format_ranges
from .http import BodySource, ProgressCallback
from .params import Identifier, Params
from .types import FileHash, Item, Permissions, SearchResult, Url, User

if TYPE_CHECKING:
    from .client import HiDrive

log = logging.getLogger(__name__)


class HiDriveUser:
    """The /user API. Only the current account is covered."""

    def __init__(self, hd: "HiDrive"):
        self.hd = hd

    async def me(self, options: Optional[Params] = None) -> User:
        """GET /user/me. Optional parameters: ``fields``."""
        return await self.hd.request("GET", "/user/me", Params(), options).json(User)


class HiDrivePermission:
    """Interact with object permissions."""

    def __init__(self, hd: "HiDrive"):
        self.hd = hd

    async def get_permission(self, id: Identifier, options: Optional[Params] = None) -> Permissions:
        """GET /permission. Optional parameters: ``account, fields``."""
        params = id.to_params(Params(), "pid", "path")
        return await self.hd.request("GET", "/permission", params, options).json(Permissions)

    async def set_permission(self, id: Identifier, options: Optional[Params] = None) -> Permissions:
        """PUT /permission. Optional parameters: ``account, invite_id, readable, writable``."""
        params = id.to_params(Params(), "pid", "path")
        return await self.hd.request("PUT", "/permission", params, options).json(Permissions)


class HiDriveFiles:
    """Interact with files and directories."""

    def __init__(self, hd: "HiDrive"):
        self.hd = hd

    # -------------------------
    # Files
    # -------------------------
    async def get(self, id: Identifier, out: Any, options: Optional[Params] = None,
                  progress: Optional[ProgressCallback] = None) -> int:
        """Download a file into ``out``.

        Args:
            id: File to download
            out: Sink with a ``write()`` method (plain or coroutine)
            options: ``snapshot, snaptime``
            progress: Called with the running byte count

        Returns:
            Number of bytes written to ``out``
        """
        params = id.to_params(Params(), "pid", "path")
        return await self.hd.request("GET", "/file", params, options,
                                     context="GET /file").download_to(out, progress)

    async def thumbnail(self, id: Identifier, out: Any, options: Optional[Params] = None) -> int:
        """Download a thumbnail. Optional parameters: ``width, height, mode, snapshot, snaptime``."""
        params = id.to_params(Params(), "pid", "path")
        return await self.hd.request("GET", "/file/thumbnail", params, options).download_to(out)

    async def url(self, id: Identifier, options: Optional[Params] = None) -> Url:
        """Obtain a public URL valid for 6 hours."""
        params = id.to_params(Params(), "pid", "path")
        return await self.hd.request("GET", "/file/url", params, options).json(Url)

    async def upload_no_overwrite(self, dir: Identifier, name: str, src: BodySource,
                                  options: Optional[Params] = None,
                                  progress: Optional[ProgressCallback] = None) -> Item:
        """Upload a file (max. 2 gigabytes) without replacing an existing one.

        ``dir`` names the target directory by ``dir_id``, ``dir`` or both. The
        server answers 409 if the file exists, raised as ``ApiError``.
        Also available: ``mtime, parent_mtime, on_exist``.
        """
        return await self._upload("POST", dir, name, src, options, progress)

    async def upload(self, dir: Identifier, name: str, src: BodySource,
                     options: Optional[Params] = None,
                     progress: Optional[ProgressCallback] = None) -> Item:
        """Upload a file (max. 2 gigabytes), overwriting an existing file."""
        return await self._upload("PUT", dir, name, src, options, progress)

    async def _upload(self, method: str, dir: Identifier, name: str, src: BodySource,
                      options: Optional[Params], progress: Optional[ProgressCallback]) -> Item:
        params = dir.to_params(Params(), "dir_id", "dir")
        params.add_str("name", name)
        log.debug(f"{method} /file name={name}")
        pending = self.hd.request(method, "/file", params, options, context=f"{method} /file")
        return await pending.with_body(src, progress=progress).json(Item)

    async def truncate(self, id: Identifier, size: int, options: Optional[Params] = None) -> Item:
        """Truncate a file to ``size``; a larger size creates a sparse file."""
        params = Params().add_uint("size", size)
        id.to_params(params, "pid", "path")
        return await self.hd.request("POST", "/file/truncate", params, options).json(Item)

    async def copy(self, src: Identifier, dst: Identifier, options: Optional[Params] = None) -> Item:
        """Copy a file. ``dst`` must contain a path.

        Also available: ``snapshot, snaptime, dst_parent_mtime, preserve_mtime``.
        """
        return await self._transfer("/file/copy", src, dst, options)

    async def mv(self, src: Identifier, dst: Identifier, options: Optional[Params] = None) -> Item:
        """Move a file. ``dst`` must contain a path."""
        return await self._transfer("/file/move", src, dst, options)

    async def rename(self, id: Identifier, name: str, options: Optional[Params] = None) -> Item:
        """Rename a file. Useful parameters: ``on_exist = {autoname, overwrite}, parent_mtime``."""
        params = Params().add_str("name", name)
        id.to_params(params, "pid", "path")
        return await self.hd.request("POST", "/file/rename", params, options).json(Item)

    async def delete(self, id: Identifier, options: Optional[Params] = None) -> None:
        """Delete a file."""
        params = id.to_params(Params(), "pid", "path")
        await self.hd.request("DELETE", "/file", params, options, context="DELETE /file").no_content()

    async def metadata(self, id: Identifier, fields: str, options: Optional[Params] = None) -> Item:
        """Return metadata, restricted to the comma separated ``fields``."""
        params = id.to_params(Params(), "pid", "path")
        params.add_str("fields", fields)
        return await self.hd.request("GET", "/meta", params, options).json(Item)

    async def search(self, root: Identifier, fields: str = "",
                     options: Optional[Params] = None) -> Sequence[Item]:
        """Search below ``root``. Pass the pattern etc. in ``options``."""
        params = root.to_params(Params(), "pid", "path")
        if fields:
            params.add_str("fields", fields)
        result = await self.hd.request("GET", "/search", params, options).json(SearchResult)
        return result.get("result", [])

    async def hash(self, id: Identifier, level: int, ranges: Sequence[Tuple[int, int]] = (),
                   options: Optional[Params] = None) -> FileHash:
        """Get file or directory hashes for ``level`` and byte ``ranges``.

        With no ranges, hashes for the entire file are returned (at most 256).

        Raises:
            ValueError: If ``level`` is negative
        """
        params = Params().add_uint("level", level)
        id.to_params(params, "pid", "path")
        params.add_str("ranges", format_ranges(ranges))
        return await self.hd.request("GET", "/file/hash", params, options).json(FileHash)

    # -------------------------
    # Directories
    # -------------------------
    async def get_dir(self, id: Identifier, options: Optional[Params] = None) -> Item:
        """Return metadata for a directory.

        Further parameters: ``members, limit, snapshot, snaptime, fields, sort``.
        """
        params = id.to_params(Params(), "pid", "path")
        return await self.hd.request("GET", "/dir", params, options, context="GET /dir").json(Item)

    async def get_home_dir(self, options: Optional[Params] = None) -> Item:
        """Return metadata for the home directory."""
        return await self.hd.request("GET", "/dir/home", Params(), options).json(Item)

    async def mkdir(self, id: Identifier, options: Optional[Params] = None) -> Item:
        """Create a directory. ``id`` must contain a path.

        Further parameters: ``on_exist, mtime, parent_mtime``.
        """
        params = id.require_path("directory").to_params(Params(), "pid", "path")
        return await self.hd.request("POST", "/dir", params, options, context="POST /dir").json(Item)

    async def delete_dir(self, id: Identifier, options: Optional[Params] = None) -> None:
        """Remove a directory. Further parameters: ``recursive, parent_mtime``."""
        params = id.to_params(Params(), "pid", "path")
        await self.hd.request("DELETE", "/dir", params, options, context="DELETE /dir").no_content()

    async def copy_dir(self, src: Identifier, dst: Identifier, options: Optional[Params] = None) -> Item:
        """Copy a directory. ``dst`` must contain a path."""
        return await self._transfer("/dir/copy", src, dst, options)

    async def mvdir(self, src: Identifier, dst: Identifier, options: Optional[Params] = None) -> Item:
        """Move a directory. ``dst`` must contain a path."""
        return await self._transfer("/dir/move", src, dst, options)

    async def renamedir(self, id: Identifier, name: str, options: Optional[Params] = None) -> Item:
        """Rename a directory. Useful parameters: ``on_exist, parent_mtime``."""
        params = Params().add_str("name", name)
        id.to_params(params, "pid", "path")
        return await self.hd.request("POST", "/dir/rename", params, options).json(Item)

    async def _transfer(self, path: str, src: Identifier, dst: Identifier,
                        options: Optional[Params]) -> Item:
        dst.require_path("destination")
        params = src.to_params(Params(), "src_id", "src")
        dst.to_params(params, "dst_id", "dst")
        return await self.hd.request("POST", path, params, options).json(Item)

