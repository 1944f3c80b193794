#!/usr/bin/env python3
"""Magia Plateada - console chat.

Logs in (restoring the saved token when possible), then walks a client
through the booking conversation or an expert through profile management.
"""
import sys
from getpass import getpass

from plateada_client.api_client import APIError, PlateadaAPI
from plateada_client.booking_flow import BookingFlow, Prompt
from plateada_client.config import get_settings
from plateada_client.expert_flow import ExpertFlow
from plateada_client.user_config import UserConfig


QUIT = "salir"


def ask(prompt: Prompt) -> str:
    """Show the bot message and read an answer. Options are picked by number."""
    print()
    print(prompt.text)

    if not prompt.options:
        return input("> ").strip()

    for index, option in enumerate(prompt.options, 1):
        print(f"  {index}. {option.label}")

    while True:
        answer = input("> ").strip()
        if answer == QUIT:
            return answer
        if answer.isdigit() and 1 <= int(answer) <= len(prompt.options):
            return prompt.options[int(answer) - 1].value
        print(f"Elige un número entre 1 y {len(prompt.options)} (o '{QUIT}').")


def authenticate(api: PlateadaAPI, user_config: UserConfig) -> bool:
    """Restore the saved session or ask for credentials."""
    if user_config.access_token:
        try:
            api.login_with_token(user_config.access_token)
            print(f"Sesión restaurada para {api.session.email}")
            return True
        except APIError as e:
            print(f"La sesión guardada expiró o no es válida: {e.detail}")
            user_config.clear_login()

    choice = input("¿Ya tienes cuenta? (s/n): ").strip().lower()
    email = input("Correo: ").strip()
    password = getpass("Contraseña: ")

    try:
        if choice.startswith("s"):
            session = api.login(email, password)
        else:
            name = input("¿Cómo te llamas? ").strip()
            offers = input("¿Quieres ofrecer tus servicios como experto? (s/n): ").strip().lower()
            role = "expert" if offers.startswith("s") else "client"
            session = api.register(email, password, name, role=role)
    except APIError as e:
        print(f"No se pudo iniciar sesión: {e.detail}")
        return False

    user_config.set_login(
        access_token=session.access_token,
        user_id=session.user_id,
        email=session.email,
        display_name=session.display_name,
    )
    if session.role == "expert":
        print(f"¡Hola, {session.display_name}!")
    else:
        print(f"¡Hola, {session.display_name}! Tienes {session.credits} créditos.")
    return True


def run_chat(flow, prompt: Prompt) -> None:
    while True:
        value = ask(prompt)
        if value == QUIT:
            return
        prompt = flow.handle(value)


def main():
    """Main entry point."""
    settings = get_settings()
    user_config = UserConfig.load()

    api = PlateadaAPI(
        server_url=user_config.server_url or settings.server_url,
        timeout=settings.request_timeout,
    )

    try:
        if not authenticate(api, user_config):
            sys.exit(1)
        if api.session.role == "expert":
            flow = ExpertFlow(api, min_age=settings.min_expert_age)
            run_chat(flow, flow.start())
        else:
            flow = BookingFlow(
                api,
                credit_packs=tuple(settings.credit_packs),
                session_cost=settings.session_credit_cost,
            )
            run_chat(flow, flow.prompt())
    except (KeyboardInterrupt, EOFError):
        print()

    print("¡Hasta pronto!")


if __name__ == "__main__":
    main()
