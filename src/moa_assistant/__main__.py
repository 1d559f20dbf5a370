import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from moa_assistant.app_config import load_json_config, parse_app_config, resolve_runtime_env
from moa_assistant.bootstrap import bootstrap_runtime
from moa_assistant.constants import APP_NAME, APP_VERSION


async def main() -> None:
    load_dotenv()

    try:
        app = parse_app_config(load_json_config())
    except ValueError as ex:
        logger.error(f"Invalid config.json: {ex}")
        sys.exit(1)
    env = resolve_runtime_env(app.provider_name)
    if env.provider_env_var and not env.provider_api_key:
        logger.warning(f"{env.provider_env_var} is not set; requests to {app.provider_name} will fail.")

    runtime = bootstrap_runtime(app, env)
    assistant = runtime.assistant
    context = assistant.context

    print(f"{APP_NAME} {APP_VERSION} (type 'exit' to quit, '/help' for commands)")
    print(f"Provider: {app.provider_name}, mode: {assistant.mode}")
    user = context.user_state.user
    print(f"Signed in as: {user.name}" if user else "Guest session (use /login or /signup to sign in)")
    if context.current_file is not None:
        print(f"Active file: {context.current_file.name}")
    if runtime.restored:
        print(f"Restored {len(context.log)} message(s) from the previous session")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    try:
        while True:
            try:
                user_input = input("you> ")
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = user_input.strip()

            if trimmed in ("exit", "quit"):
                break

            if not trimmed:
                continue

            try:
                await assistant.run(trimmed)
                print()
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        runtime.storage.close()


def cli() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    cli()
