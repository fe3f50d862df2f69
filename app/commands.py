# app/commands.py

from flask.cli import with_appcontext
from app.glpi_client import get_glpi_client
from app.repositories import create_indexes
import click
import pymongo


@click.command("init-db")
@with_appcontext
def init_db_command():
    """Crea los índices de las colecciones (usuarios, perfiles, tickets y mensajes)."""
    print("Creando índices de MongoDB...")
    try:
        create_indexes()
        print("Índices creados con éxito.")
    except pymongo.errors.PyMongoError as e:
        print(f"\nERROR: Ocurrió un error de base de datos durante la inicialización: {e}")
        raise click.Abort()


@click.command("glpi-check")
@with_appcontext
def glpi_check_command():
    """Comprueba la conexión con GLPI: abre sesión, lee el último ticket y cierra la sesión."""
    client = get_glpi_client()
    if not client.is_configured():
        print("GLPI no está configurado (GLPI_API_URL, GLPI_APP_TOKEN, GLPI_AUTH_TOKEN).")
        raise click.Abort()

    last_ticket_id = client.get_last_ticket()
    if client.session_store.current is None:
        print("No se pudo iniciar sesión en GLPI. Revisa los logs para más detalles.")
        raise click.Abort()

    print(f"Conexión con GLPI correcta. Último ticket: {last_ticket_id}")
    client.kill_session()
