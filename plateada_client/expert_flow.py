"""Conversational profile management for experts.

    ExpertMenu -> EnteringProfile (one state per question) -> ExpertMenu
    ExpertMenu -> ChoosingField -> EditingField -> ExpertMenu
    ExpertMenu -> ChoosingStatus -> ExpertMenu
    ExpertMenu -> ReviewingMembership -> ExpertMenu
    ExpertMenu -> ReviewingSessions -> AnsweringSession -> ReviewingSessions

"home" returns to the menu from any state.
"""
from dataclasses import dataclass
from typing import Optional, Union

from .api_client import APIError, PlateadaAPI
from .booking_flow import HOME, SERVICE_OPTIONS, ZONE_OPTIONS, Option, Prompt, make_options


EXPERT_MODALITY_OPTIONS = [("Presencial", "presencial"), ("Remoto", "remoto"), ("Ambos", "ambos")]
EXPERT_ZONE_OPTIONS = [pair for pair in ZONE_OPTIONS if pair[1] != "cualquiera"]

STATUS_OPTIONS = [
    ("Disponible", "available"),
    ("Con agenda llena", "busy"),
    ("No disponible temporalmente", "unavailable"),
]

EDITABLE_FIELDS = [
    ("Servicio ofrecido", "service"),
    ("Experiencia", "experience"),
    ("Horario", "schedule"),
    ("Contacto", "contact"),
    ("Zona", "zone"),
    ("Modalidad", "modality"),
]
FIELD_NAMES = {
    "service": "servicio",
    "experience": "experiencia",
    "schedule": "horario",
    "contact": "contacto",
    "zone": "zona",
    "modality": "modalidad",
}
FIELD_QUESTIONS = {
    "service": "Escribe tu nuevo servicio ofrecido:",
    "experience": "Describe tu nueva experiencia:",
    "schedule": "Escribe tu nuevo horario (ej: Lunes a Viernes, 10:00 - 14:00):",
    "contact": "Escribe tu nuevo medio de contacto:",
    "zone": "Selecciona tu nueva zona:",
    "modality": "Selecciona tu nueva modalidad:",
}
FIELD_CHOICES = {"zone": EXPERT_ZONE_OPTIONS, "modality": EXPERT_MODALITY_OPTIONS}

MENU_OPTIONS = [
    ("Ver mi perfil", "expert_view_profile"),
    ("Editar mi información", "expert_edit_info"),
    ("Cambiar disponibilidad", "expert_change_status"),
    ("Membresía destacada", "expert_membership"),
    ("Ver solicitudes de sesión", "expert_view_sessions"),
]

SESSION_LABELS = {"pending": "pendiente", "accepted": "confirmada"}
SESSION_ACTIONS = {
    "accept_session": ("accepted", "La sesión fue aceptada."),
    "reject_session": ("rejected", "La sesión fue rechazada. El cliente recuperó sus créditos."),
    "complete_session": ("completed", "La sesión quedó marcada como completada."),
}


@dataclass(frozen=True)
class ProfileQuestion:
    key: str
    text: str
    choices: tuple = ()


PROFILE_QUESTIONS = (
    ProfileQuestion("name", "Para comenzar tu perfil profesional, ¿cuál es tu nombre completo?"),
    ProfileQuestion("age", "¿Qué edad tienes? Recuerda que este espacio es para personas mayores de {min_age} años."),
    ProfileQuestion("serviceCategory", "¿Qué tipo de servicio ofreces?", tuple(SERVICE_OPTIONS)),
    ProfileQuestion("service", "Describe brevemente el servicio que ofreces:"),
    ProfileQuestion("experience", "Cuéntame sobre tu experiencia en este campo."),
    ProfileQuestion("modality", "¿Cuál es tu modalidad preferida?", tuple(EXPERT_MODALITY_OPTIONS)),
    ProfileQuestion("zone", "¿En qué zona te encuentras?", tuple(EXPERT_ZONE_OPTIONS)),
    ProfileQuestion("schedule", "¿Cuáles son tus horarios disponibles? Por ejemplo: Lunes a Viernes, 10:00 - 14:00"),
    ProfileQuestion("contact", "Por último, ¿cuál es tu medio de contacto preferido? (WhatsApp, teléfono, correo)"),
)


# ============= States =============

@dataclass(frozen=True)
class ExpertMenu:
    pass


@dataclass(frozen=True)
class MissingProfile:
    pass


@dataclass(frozen=True)
class EnteringProfile:
    """Answering PROFILE_QUESTIONS[step]. `answers` holds the earlier ones."""
    step: int = 0
    answers: tuple = ()


@dataclass(frozen=True)
class ChoosingField:
    pass


@dataclass(frozen=True)
class EditingField:
    field: str


@dataclass(frozen=True)
class ChoosingStatus:
    pass


@dataclass(frozen=True)
class ReviewingMembership:
    membership_type: str


@dataclass(frozen=True)
class ReviewingSessions:
    sessions: tuple


@dataclass(frozen=True)
class AnsweringSession:
    session: dict


State = Union[
    ExpertMenu, MissingProfile, EnteringProfile, ChoosingField, EditingField,
    ChoosingStatus, ReviewingMembership, ReviewingSessions, AnsweringSession,
]


def _label(pairs, value: str) -> str:
    return next((label for label, v in pairs if v == value), value)


def describe_profile(dashboard: dict) -> str:
    """Profile summary shown by 'Ver mi perfil'."""
    e = dashboard["expert"]
    membership = "Premium (Destacado)" if e["membershipType"] == "premium" else "Gratuita"
    return (
        f"Tu perfil:\n\n"
        f"Nombre: {e['name']}\n"
        f"Servicio: {e['service']}\n"
        f"Experiencia: {e['experience']}\n"
        f"Modalidad: {_label(EXPERT_MODALITY_OPTIONS, e['modality'])}\n"
        f"Zona: {e['zone']}\n"
        f"Horario: {e['schedule']}\n"
        f"Contacto: {e['contact'] or '-'}\n"
        f"Estado: {_label(STATUS_OPTIONS, e['status'])}\n"
        f"Membresía: {membership}\n"
        f"Calificación: {e['rating']:.1f}/5 ({e['totalRatings']} reseñas)\n"
        f"Solicitudes pendientes: {dashboard['pendingSessions']} "
        f"(urgentes: {dashboard['urgentSessions']}), confirmadas: {dashboard['confirmedSessions']}"
    )


class ExpertFlow:
    """Lets an expert create and maintain their profile and answer session requests."""

    def __init__(self, api: PlateadaAPI, min_age: int = 50):
        self.api = api
        self.min_age = min_age
        self.state: State = ExpertMenu()

    def start(self) -> Prompt:
        """Open the menu, or the profile questions when there is no profile yet."""
        try:
            dashboard = self.api.get_expert_dashboard()
        except APIError as e:
            return self.prompt(notice=f"No pude cargar tu perfil ({e.detail}).")

        if dashboard["expert"] is None:
            self.state = EnteringProfile()
            return self.prompt(notice="Vamos a completar tu perfil profesional.")
        self.state = ExpertMenu()
        return self.prompt()

    def reset(self) -> Prompt:
        self.state = ExpertMenu()
        return self.prompt()

    # ============= Prompts =============

    def prompt(self, notice: Optional[str] = None) -> Prompt:
        prompt = self._prompt_for(self.state)
        if notice:
            return Prompt(f"{notice}\n{prompt.text}", prompt.options)
        return prompt

    def _prompt_for(self, state: State) -> Prompt:
        if isinstance(state, ExpertMenu):
            return Prompt("¿Qué deseas hacer?", make_options(MENU_OPTIONS))
        if isinstance(state, MissingProfile):
            return Prompt(
                "Aún no tienes un perfil de experto creado. ¿Deseas crearlo?",
                [Option("Sí, crear perfil", "create_profile"), Option("Volver al inicio", HOME)],
            )
        if isinstance(state, EnteringProfile):
            question = PROFILE_QUESTIONS[state.step]
            return Prompt(question.text.format(min_age=self.min_age), make_options(question.choices))
        if isinstance(state, ChoosingField):
            return Prompt("¿Qué campo deseas editar?", make_options(EDITABLE_FIELDS))
        if isinstance(state, EditingField):
            return Prompt(FIELD_QUESTIONS[state.field], make_options(FIELD_CHOICES.get(state.field, ())))
        if isinstance(state, ChoosingStatus):
            return Prompt("¿Cuál es tu nueva disponibilidad?", make_options(STATUS_OPTIONS))
        if isinstance(state, ReviewingMembership):
            if state.membership_type == "premium":
                return Prompt(
                    "Actualmente tienes la membresía Premium activa. Tu perfil aparece destacado "
                    "y con prioridad en los resultados. ¿Deseas desactivarla?",
                    [Option("Desactivar premium", "deactivate_premium"), Option("Menú principal", HOME)],
                )
            return Prompt(
                "La membresía Premium te da visibilidad destacada: tu perfil aparece primero en los "
                "resultados. ¿Deseas activarla? (simulado, sin costo real)",
                [Option("Activar Premium", "activate_premium"), Option("Menú principal", HOME)],
            )
        if isinstance(state, ReviewingSessions):
            if not state.sessions:
                return Prompt("No tienes sesiones pendientes en este momento.", [Option("Menú principal", HOME)])
            options = [
                Option(
                    f"{s.get('clientName') or 'Cliente'} - {s['requestedDate']} {s['requestedTime']}"
                    f" ({SESSION_LABELS[s['status']]})",
                    s["id"],
                )
                for s in state.sessions
            ]
            return Prompt(
                f"Tienes {len(state.sessions)} sesión(es) por atender:",
                options + [Option("Menú principal", HOME)],
            )
        if isinstance(state, AnsweringSession):
            if state.session["status"] == "pending":
                actions = [Option("Aceptar", "accept_session"), Option("Rechazar", "reject_session")]
            else:
                actions = [Option("Marcar como completada", "complete_session")]
            return Prompt(
                f"Solicitud de {state.session.get('clientName') or 'Cliente'} para el "
                f"{state.session['requestedDate']}. ¿Qué deseas hacer?",
                actions + [Option("Volver a la lista", "back_sessions")],
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

        if isinstance(state, ExpertMenu):
            return self._menu(value)
        if isinstance(state, MissingProfile):
            if value == "create_profile":
                self.state = EnteringProfile()
            return None
        if isinstance(state, EnteringProfile):
            return self._answer(state, value)
        if isinstance(state, ChoosingField):
            if value not in FIELD_NAMES:
                return "Elige uno de los campos."
            self.state = EditingField(value)
        elif isinstance(state, EditingField):
            choices = FIELD_CHOICES.get(state.field)
            if not value or (choices and value not in {v for _, v in choices}):
                return "Escribe el nuevo valor."
            self.api.update_profile_field(state.field, value)
            self.state = ExpertMenu()
            return f"Tu {FIELD_NAMES[state.field]} ha sido actualizado exitosamente."
        elif isinstance(state, ChoosingStatus):
            if value not in {v for _, v in STATUS_OPTIONS}:
                return "Elige una de las opciones."
            self.api.set_expert_status(value)
            self.state = ExpertMenu()
            return f'Tu estado ha sido actualizado a "{_label(STATUS_OPTIONS, value)}".'
        elif isinstance(state, ReviewingMembership):
            if value not in ("activate_premium", "deactivate_premium"):
                return "Elige una de las opciones."
            featured = self.api.set_membership("premium" if value == "activate_premium" else "free")
            self.state = ExpertMenu()
            if featured:
                return "¡Membresía premium activada! Tu perfil aparecerá destacado en las búsquedas."
            return "Tu membresía ha vuelto al plan gratuito."
        elif isinstance(state, ReviewingSessions):
            session = next((s for s in state.sessions if s["id"] == value), None)
            if session is None:
                return "Elige una de las solicitudes."
            self.state = AnsweringSession(session)
        elif isinstance(state, AnsweringSession):
            if value == "back_sessions":
                self.state = self._sessions()
                return None
            if value not in SESSION_ACTIONS:
                return "Elige una de las opciones."
            status, message = SESSION_ACTIONS[value]
            self.api.update_session(state.session["id"], status)
            self.state = self._sessions()
            return message
        return None

    def _menu(self, value: str) -> Optional[str]:
        if value == "expert_view_profile":
            dashboard = self.api.get_expert_dashboard()
            if dashboard["expert"] is None:
                self.state = MissingProfile()
                return None
            return describe_profile(dashboard)
        if value == "expert_edit_info":
            self.state = ChoosingField()
        elif value == "expert_change_status":
            self.state = ChoosingStatus()
        elif value == "expert_membership":
            expert = self.api.get_expert_dashboard()["expert"]
            if expert is None:
                self.state = MissingProfile()
                return None
            self.state = ReviewingMembership(expert["membershipType"])
        elif value == "expert_view_sessions":
            self.state = self._sessions()
        else:
            return "Elige una de las opciones."
        return None

    def _answer(self, state: EnteringProfile, value: str) -> Optional[str]:
        question = PROFILE_QUESTIONS[state.step]
        if question.choices and value not in {v for _, v in question.choices}:
            return "Elige una de las opciones."
        if question.key == "age" and (not value.isdigit() or int(value) < self.min_age):
            return (
                f"Lo sentimos, esta plataforma está diseñada para personas de {self.min_age} años "
                f"en adelante. Si crees que hubo un error, intenta de nuevo."
            )
        if not value and question.key != "contact":
            return "Necesito una respuesta para continuar."

        answers = state.answers + ((question.key, value),)
        if state.step + 1 < len(PROFILE_QUESTIONS):
            self.state = EnteringProfile(state.step + 1, answers)
            return None

        profile = dict(answers)
        profile["age"] = int(profile["age"])
        self.api.create_expert_profile(profile)
        self.state = ExpertMenu()
        return (
            "¡Excelente! Tu perfil ha sido creado. Ahora los usuarios podrán encontrarte "
            "cuando busquen servicios como los tuyos."
        )

    def _sessions(self) -> ReviewingSessions:
        """Requests the expert still has to answer or complete, oldest first."""
        sessions = self.api.list_sessions()["expertSessions"]
        open_sessions = [s for s in reversed(sessions) if s["status"] in SESSION_LABELS]
        return ReviewingSessions(tuple(open_sessions))
