"""Client-side studio state: input mode, focused gallery item and the gallery list."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID

from atelier.services.gallery import GalleryItem, GalleryPage, project


class AppMode(str, Enum):
    EDIT = "EDIT"
    GENERATE = "GENERATE"
    VIDEO = "VIDEO"


@dataclass
class StudioState:
    """Session state for one studio user.

    The gallery is ordered newest first. Removing an item only hides it for
    this session; the generation row is untouched.
    """

    mode: AppMode = AppMode.GENERATE
    focused_item_index: Optional[int] = None
    gallery: list[GalleryItem] = field(default_factory=list)
    has_more: bool = True

    def set_mode(self, mode: AppMode) -> None:
        self.mode = AppMode(mode)

    def set_focused_item_index(self, index: Optional[int]) -> None:
        if index is not None and not 0 <= index < len(self.gallery):
            raise IndexError(f"No gallery item at index {index}")
        self.focused_item_index = index

    @property
    def focused_item(self) -> Optional[GalleryItem]:
        if self.focused_item_index is None:
            return None
        return self.gallery[self.focused_item_index]

    def add_to_gallery(self, item: GalleryItem) -> None:
        """Prepend a newly finished item. An item already present moves to the front."""
        existing = [i for i, current in enumerate(self.gallery) if current.id == item.id]
        for index in reversed(existing):
            self._remove_at(index)
        self.gallery.insert(0, item)
        if self.focused_item_index is not None:
            self.focused_item_index += 1

    def add_generation(self, generation: Any) -> GalleryItem:
        """Project a successful generation row and prepend it."""
        item = project(generation)
        self.add_to_gallery(item)
        return item

    def remove_from_gallery(self, item_id: UUID) -> bool:
        """Hide an item. Returns False when it is not in the gallery."""
        for index, item in enumerate(self.gallery):
            if item.id == item_id:
                self._remove_at(index)
                return True
        return False

    def _remove_at(self, index: int) -> None:
        del self.gallery[index]
        if self.focused_item_index is None:
            return
        if self.focused_item_index == index:
            self.focused_item_index = None
        elif self.focused_item_index > index:
            self.focused_item_index -= 1

    @property
    def cursor(self) -> Optional[datetime]:
        """Timestamp of the oldest loaded item, used as ``before`` for the next page."""
        if not self.gallery:
            return None
        return min(item.timestamp for item in self.gallery)

    def apply_page(self, page: GalleryPage) -> None:
        """Append an older page, skipping items already loaded."""
        known = {item.id for item in self.gallery}
        self.gallery.extend(item for item in page.items if item.id not in known)
        self.has_more = page.has_more

    async def load_more(self, client: Any, limit: int = 8) -> GalleryPage:
        """Fetch the next older page through a StudioClient and append it."""
        page = await client.list_gallery(limit=limit, before=self.cursor)
        self.apply_page(page)
        return page
