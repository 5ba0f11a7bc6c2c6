"""Initialize the rewinder database and create library tier directories."""

from src.rewinder.config import load_config


def main() -> None:
    config = load_config()
    print("Database initialized.")
    if config.admin_password:
        print(
            f"Admin '{config.settings.initial_admin_user}' created with password: "
            f"{config.admin_password}"
        )


if __name__ == "__main__":
    main()
