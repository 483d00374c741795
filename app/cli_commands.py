"""
Flask CLI commands.

Commands:
- flask init-db: Sync the schema and bootstrap the default optic and admin
- flask create-admin: Create a new admin user
"""

import click
from flask import current_app
from app.database import get_engine, get_session
from app.exceptions import ConflictError
from app.models import Optic, UserRole
from app.services import user_service
from app.utils.validators import EMAIL_PATTERN


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create missing tables/columns and the default optic and admin."""
        from app.schema import sync_schema, bootstrap_defaults

        added = sync_schema(get_engine())
        bootstrap_defaults(get_session(), current_app.config)

        click.echo(click.style('✅ Base de datos sincronizada', fg='green', bold=True))
        if added:
            click.echo(f'   Columnas agregadas: {", ".join(added)}')

    @app.cli.command('create-admin')
    @click.option('--username', prompt=True, help='Admin username')
    @click.option('--email', prompt=True, help='Admin email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Admin password')
    @click.option('--optic-id', type=int, default=None, help='Optic the admin belongs to (defaults to the first one)')
    def create_admin(username, email, password, optic_id):
        """Create a new admin user."""
        session = get_session()

        # Validate email format
        if not EMAIL_PATTERN.match(email):
            click.echo(click.style('❌ Email inválido. Use formato: user@example.com', fg='red'))
            return

        # Validate password length
        if len(password) < 6:
            click.echo(click.style('❌ La contraseña debe tener al menos 6 caracteres.', fg='red'))
            return

        if optic_id is None:
            optic = session.query(Optic).filter(Optic.is_active.is_(True)).order_by(Optic.id).first()
            optic_id = optic.id if optic else None

        try:
            admin = user_service.create_user(
                session,
                username=username,
                email=email,
                optic_id=optic_id,
                password=password,
                role=UserRole.ADMIN.value,
                is_approved=True,
            )
            session.commit()
        except ConflictError as e:
            session.rollback()
            click.echo(click.style(f'❌ {e.message}', fg='red'))
            return
        except Exception as e:
            session.rollback()
            click.echo(click.style(f'❌ Error al crear administrador: {str(e)}', fg='red'))
            return

        click.echo(click.style('\n✅ Administrador creado exitosamente!', fg='green', bold=True))
        click.echo(f'   Usuario: {username}')
        click.echo(f'   ID: {admin.id}')
