"""Conversational booking flow for clients.

Each step of the chat is a named state carrying exactly the data gathered so
far. `BookingFlow.handle` takes the user's answer, calls the API when a step
needs it and moves to the next state.

    ChoosingService -> ChoosingModality -> ChoosingZone -> ShowingResults
    ShowingResults -> ChoosingDate -> ChoosingTime -> ChoosingDuration
    ChoosingDuration -> ConfirmingRequest -> SessionRequested
    ConfirmingRequest -> OfferingCredits -> ChoosingCreditPack -> ConfirmingRequest

"home" restarts the flow from any state.
"""
from dataclasses import dataclass, field
from typing import Optional, Union

from .api_client import APIError, InsufficientCreditsError, PlateadaAPI


SERVICE_OPTIONS = [
    ("Clases o enseñanza", "clases"),
    ("Reparaciones", "reparaciones"),
    ("Asesoría profesional", "asesoria"),
    ("Oficios manuales", "oficios"),
    ("Otro servicio", "otro"),
]
MODALITY_OPTIONS = [("Presencial", "presencial"), ("Remoto", "remoto"), ("Me da igual", "ambos")]
ZONE_OPTIONS = [
    ("Centro", "Centro"),
    ("Norte", "Norte"),
    ("Sur", "Sur"),
    ("Este", "Este"),
    ("Cualquier zona", "cualquiera"),
]
TIME_OPTIONS = [("Mañana (9-12)", "09:00"), ("Tarde (12-17)", "14:00"), ("Noche (17-20)", "18:00")]
DURATION_OPTIONS = [("30 minutos", "30 minutos"), ("1 hora", "1 hora"), ("2 horas", "2 horas")]

HOME = "home"


@dataclass(frozen=True)
class Option:
    label: str
    value: str


@dataclass(frozen=True)
class Prompt:
    """What the bot says next. Empty options means free-text input."""
    text: str
    options: list[Option] = field(default_factory=list)


@dataclass(frozen=True)
class Search:
    service_category: str
    modality: str
    zone: str

    def filters(self) -> dict:
        """Listing filters. "ambos" and "cualquiera" mean no restriction."""
        return {
            "service_category": self.service_category or None,
            "modality": None if self.modality == "ambos" else self.modality,
            "zone": None if self.zone == "cualquiera" else self.zone,
        }


@dataclass(frozen=True)
class SessionDraft:
    expert: dict
    requested_date: str
    requested_time: str
    requested_duration: str


# ============= States =============

@dataclass(frozen=True)
class ChoosingService:
    pass


@dataclass(frozen=True)
class ChoosingModality:
    service_category: str


@dataclass(frozen=True)
class ChoosingZone:
    service_category: str
    modality: str


@dataclass(frozen=True)
class ShowingResults:
    search: Search
    experts: tuple


@dataclass(frozen=True)
class ChoosingDate:
    results: ShowingResults
    expert: dict


@dataclass(frozen=True)
class ChoosingTime:
    results: ShowingResults
    expert: dict
    requested_date: str


@dataclass(frozen=True)
class ChoosingDuration:
    results: ShowingResults
    expert: dict
    requested_date: str
    requested_time: str


@dataclass(frozen=True)
class ConfirmingRequest:
    results: ShowingResults
    draft: SessionDraft


@dataclass(frozen=True)
class OfferingCredits:
    results: ShowingResults
    draft: SessionDraft
    credits: int


@dataclass(frozen=True)
class ChoosingCreditPack:
    results: ShowingResults
    draft: SessionDraft


@dataclass(frozen=True)
class SessionRequested:
    results: ShowingResults
    session: dict
    credits: int


State = Union[
    ChoosingService, ChoosingModality, ChoosingZone, ShowingResults, ChoosingDate,
    ChoosingTime, ChoosingDuration, ConfirmingRequest, OfferingCredits,
    ChoosingCreditPack, SessionRequested,
]


def make_options(pairs) -> list[Option]:
    return [Option(label, value) for label, value in pairs]


def _first_name(expert: dict) -> str:
    return (expert.get("name") or "el experto").split()[0]


def _credits(amount: int) -> str:
    return "1 crédito" if amount == 1 else f"{amount} créditos"


class BookingFlow:
    """Drives a client from search to a paid session request."""

    def __init__(
        self,
        api: PlateadaAPI,
        credit_packs: tuple[int, ...] = (3, 5, 10),
        session_cost: int = 1,
    ):
        self.api = api
        self.credit_packs = credit_packs
        self.session_cost = session_cost
        self.state: State = ChoosingService()

    def reset(self) -> Prompt:
        self.state = ChoosingService()
        return self.prompt()

    # ============= Prompts =============

    def prompt(self, notice: Optional[str] = None) -> Prompt:
        """Bot message for the current state, optionally prefixed by a notice."""
        prompt = self._prompt_for(self.state)
        if notice:
            return Prompt(f"{notice}\n{prompt.text}", prompt.options)
        return prompt

    def _prompt_for(self, state: State) -> Prompt:
        if isinstance(state, ChoosingService):
            return Prompt("Cuéntame, ¿qué tipo de servicio estás buscando?", make_options(SERVICE_OPTIONS))
        if isinstance(state, ChoosingModality):
            return Prompt("¿Prefieres que el servicio sea presencial o remoto?", make_options(MODALITY_OPTIONS))
        if isinstance(state, ChoosingZone):
            return Prompt("¿En qué zona te encuentras?", make_options(ZONE_OPTIONS))
        if isinstance(state, ShowingResults):
            if not state.experts:
                return Prompt(
                    "No encontré expertos disponibles con esos criterios.",
                    [Option("Nueva búsqueda", HOME)],
                )
            options = [
                Option(f"{e['name']} - {e['service']} ({e['rating']:.1f})", e["id"])
                for e in state.experts
            ]
            return Prompt("Estos son los expertos disponibles:", options + [Option("Volver al inicio", HOME)])
        if isinstance(state, ChoosingDate):
            return Prompt(f"¿Qué día te gustaría la sesión con {_first_name(state.expert)}?")
        if isinstance(state, ChoosingTime):
            return Prompt("¿A qué hora te gustaría la sesión?", make_options(TIME_OPTIONS))
        if isinstance(state, ChoosingDuration):
            return Prompt("¿Qué duración aproximada necesitas?", make_options(DURATION_OPTIONS))
        if isinstance(state, ConfirmingRequest):
            draft = state.draft
            return Prompt(
                f"Voy a enviar tu solicitud a {_first_name(draft.expert)} para el "
                f"{draft.requested_date} a las {draft.requested_time}. "
                f"Esto costará {_credits(self.session_cost)}. ¿Confirmas?",
                [Option("Sí, confirmar", "confirm_session"), Option("Cancelar", "cancel_session")],
            )
        if isinstance(state, OfferingCredits):
            return Prompt(
                f"No tienes suficientes créditos. Tu saldo actual es {state.credits}. "
                f"¿Deseas adquirir más créditos?",
                [Option("Comprar créditos", "buy_credits"), Option("Volver al inicio", HOME)],
            )
        if isinstance(state, ChoosingCreditPack):
            return Prompt(
                "¿Cuántos créditos deseas adquirir?",
                [Option(f"{n} créditos", f"buy_{n}") for n in self.credit_packs],
            )
        if isinstance(state, SessionRequested):
            return Prompt(
                f"¡Tu solicitud fue enviada! Se descontaron {_credits(state.session['creditsCost'])}. "
                f"Tu saldo actual es de {state.credits} créditos.",
                [Option("Buscar otro experto", "go_results"), Option("Volver al inicio", HOME)],
            )
        raise TypeError(f"Unknown state: {state!r}")

    # ============= Transitions =============

    def handle(self, value: str) -> Prompt:
        """Apply the user's answer and return the next bot message."""
        value = value.strip()
        if value == HOME:
            return self.reset()

        try:
            notice = self._advance(value)
        except APIError as e:
            return self.prompt(notice=f"No pude completar la operación ({e.detail}). Intenta de nuevo.")
        return self.prompt(notice=notice)

    def _advance(self, value: str) -> Optional[str]:
        state = self.state

        if isinstance(state, ChoosingService):
            self.state = ChoosingModality(service_category=value)
        elif isinstance(state, ChoosingModality):
            if value not in {v for _, v in MODALITY_OPTIONS}:
                return "Elige una de las opciones."
            self.state = ChoosingZone(state.service_category, value)
        elif isinstance(state, ChoosingZone):
            search = Search(state.service_category, state.modality, value)
            self.state = self._search(search)
        elif isinstance(state, ShowingResults):
            expert = next((e for e in state.experts if e["id"] == value), None)
            if expert is None:
                return "Elige uno de los expertos de la lista."
            self.state = ChoosingDate(state, expert)
        elif isinstance(state, ChoosingDate):
            if not value:
                return "Escribe una fecha para la sesión."
            self.state = ChoosingTime(state.results, state.expert, value)
        elif isinstance(state, ChoosingTime):
            self.state = ChoosingDuration(state.results, state.expert, state.requested_date, value)
        elif isinstance(state, ChoosingDuration):
            draft = SessionDraft(state.expert, state.requested_date, state.requested_time, value)
            self.state = ConfirmingRequest(state.results, draft)
        elif isinstance(state, ConfirmingRequest):
            if value == "cancel_session":
                self.state = state.results
                return "Solicitud cancelada."
            if value == "confirm_session":
                return self._request(state)
            return "Elige una de las opciones."
        elif isinstance(state, OfferingCredits):
            if value == "buy_credits":
                self.state = ChoosingCreditPack(state.results, state.draft)
        elif isinstance(state, ChoosingCreditPack):
            if not value.startswith("buy_") or not value[4:].isdigit():
                return "Elige uno de los paquetes."
            amount = int(value[4:])
            credits = self.api.purchase_credits(amount)
            self.state = ConfirmingRequest(state.results, state.draft)
            return f"¡Listo! Se agregaron {amount} créditos. Tu saldo actual es de {credits} créditos."
        elif isinstance(state, SessionRequested):
            if value == "go_results":
                self.state = self._search(state.results.search)
        return None

    def _search(self, search: Search) -> ShowingResults:
        experts = self.api.list_experts(**search.filters())
        return ShowingResults(search, tuple(experts))

    def _request(self, state: ConfirmingRequest) -> Optional[str]:
        draft = state.draft
        try:
            session = self.api.request_session(
                draft.expert["id"],
                draft.requested_date,
                draft.requested_time,
                draft.requested_duration,
            )
        except InsufficientCreditsError as e:
            self.state = OfferingCredits(state.results, draft, e.credits)
            return None

        self.state = SessionRequested(state.results, session, self.api.credits)
        return None
