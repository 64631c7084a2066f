import time
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional
from .models import Message, MessageRole, NewSlide, Slide, WorkspaceSnapshot

ChangeListener = Callable[[], None]

def _now_ms() -> int:
	return int(time.time() * 1000)

class SlideStore:
	def __init__(self) -> None:
		self._slides: List[Slide] = []
		self._issued_ids: set[str] = set()

	def __len__(self) -> int:
		return len(self._slides)

	def __iter__(self) -> Iterator[Slide]:
		return iter(list(self._slides))

	@property
	def slides(self) -> List[Slide]:
		return list(self._slides)

	def at(self, index: int) -> Slide:
		return self._slides[index]

	def get(self, slide_id: str) -> Optional[Slide]:
		return next((s for s in self._slides if s.id == slide_id), None)

	def _new_id(self) -> str:
		slide_id = str(uuid.uuid4())
		while slide_id in self._issued_ids:
			slide_id = str(uuid.uuid4())
		self._issued_ids.add(slide_id)
		return slide_id

	def append(self, new_slides: List[NewSlide]) -> List[Slide]:
		created = [Slide(id=self._new_id(), name=n.name, image=n.image) for n in new_slides]
		self._slides.extend(created)
		return created

	def attach_explanation(self, slide_id: str, text: str) -> bool:
		for idx, slide in enumerate(self._slides):
			if slide.id == slide_id:
				self._slides[idx] = slide.model_copy(update={"explanation": text})
				return True
		return False

	def load(self, slides: List[Slide]) -> None:
		self._slides = list(slides)
		self._issued_ids.update(s.id for s in slides)

	def clear(self) -> None:
		# issued ids are kept so a cleared store never hands one out again
		self._slides = []

class WorkspaceSession:
	"""The single workspace aggregate: slides, chat log and the active slide.

	Every command that changes state notifies subscribers once; restore/reset
	are driven by persistence itself and stay silent. Both bump `generation`
	so that requests issued against the previous session can tell.
	"""

	def __init__(self) -> None:
		self.store = SlideStore()
		self.messages: List[Message] = []
		self.active_index = 0
		self.generation = 0
		self._listeners: List[ChangeListener] = []

	def subscribe(self, listener: ChangeListener) -> None:
		self._listeners.append(listener)

	def _notify(self) -> None:
		for listener in list(self._listeners):
			listener()

	@property
	def slides(self) -> List[Slide]:
		return self.store.slides

	@property
	def active_slide(self) -> Optional[Slide]:
		if not len(self.store):
			return None
		return self.store.at(self.active_index)

	def add_slides(self, new_slides: List[NewSlide]) -> List[Slide]:
		if not new_slides:
			return []
		created = self.store.append(new_slides)
		self._notify()
		return created

	def add_message(self, role: MessageRole, content: str) -> Message:
		message = Message(id=str(uuid.uuid4()), role=role, content=content, timestamp=_now_ms())
		self.messages.append(message)
		self._notify()
		return message

	def navigate(self, index: int) -> bool:
		if not 0 <= index < len(self.store):
			return False
		self.active_index = index
		self._notify()
		return True

	def attach_explanation(self, slide_id: str, text: str) -> bool:
		updated = self.store.attach_explanation(slide_id, text)
		if updated:
			self._notify()
		return updated

	def snapshot(self) -> WorkspaceSnapshot:
		return WorkspaceSnapshot(
			slides=self.store.slides,
			messages=list(self.messages),
			last_active_index=self.active_index,
			saved_at=datetime.now(timezone.utc),
		)

	def restore(self, snapshot: WorkspaceSnapshot) -> None:
		self.store.clear()
		self.store.load(snapshot.slides)
		self.messages = list(snapshot.messages)
		self.active_index = snapshot.last_active_index
		self.generation += 1

	def reset(self) -> None:
		self.store.clear()
		self.messages = []
		self.active_index = 0
		self.generation += 1
