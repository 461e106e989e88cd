import logging
from datetime import datetime, timezone

import psycopg2
from psycopg2.extras import RealDictCursor

from backend import config

logger = logging.getLogger(__name__)

ATHLETE_COLUMNS = (
    "athlete_id, firstname, lastname, username, profile, "
    "access_token, refresh_token, expires_at"
)


def get_db_connection():
    """Devuelve una conexión a PostgreSQL usando DATABASE_URL, o None si no es posible."""
    if not config.DATABASE_URL:
        logger.warning("DATABASE_URL no está configurada; almacenamiento de atletas deshabilitado")
        return None
    try:
        return psycopg2.connect(config.DATABASE_URL, cursor_factory=RealDictCursor)
    except psycopg2.Error as e:
        logger.error("Error conectando a la base de datos: %s", e)
        return None


def init_db():
    """Crea la tabla de atletas si no existe."""
    conn = get_db_connection()
    if conn is None:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute('''
                CREATE TABLE IF NOT EXISTS athletes (
                    athlete_id BIGINT PRIMARY KEY,
                    firstname TEXT,
                    lastname TEXT,
                    username TEXT,
                    profile TEXT,
                    access_token TEXT,
                    refresh_token TEXT,
                    expires_at BIGINT,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            ''')
        conn.commit()
        logger.info("Base de datos inicializada correctamente")
        return True
    except psycopg2.Error as e:
        conn.rollback()
        logger.error("Error inicializando la base de datos: %s", e)
        return False
    finally:
        conn.close()


def upsert_athlete(athlete, token_data):
    """Guarda o actualiza el atleta y sus tokens tras el login con Strava."""
    conn = get_db_connection()
    if conn is None:
        return False
    values = (
        athlete['id'], athlete.get('firstname'), athlete.get('lastname'),
        athlete.get('username'), athlete.get('profile'),
        token_data['access_token'], token_data.get('refresh_token'),
        token_data.get('expires_at'), datetime.now(timezone.utc),
    )
    try:
        with conn.cursor() as cur:
            cur.execute('''
                INSERT INTO athletes (athlete_id, firstname, lastname, username, profile,
                                      access_token, refresh_token, expires_at, updated_at)
                VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                ON CONFLICT (athlete_id) DO UPDATE
                SET firstname = EXCLUDED.firstname,
                    lastname = EXCLUDED.lastname,
                    username = EXCLUDED.username,
                    profile = EXCLUDED.profile,
                    access_token = EXCLUDED.access_token,
                    refresh_token = COALESCE(EXCLUDED.refresh_token, athletes.refresh_token),
                    expires_at = EXCLUDED.expires_at,
                    updated_at = EXCLUDED.updated_at
            ''', values)
        conn.commit()
        return True
    except psycopg2.Error as e:
        conn.rollback()
        logger.error("Error guardando el atleta %s: %s", athlete.get('id'), e)
        return False
    finally:
        conn.close()


def list_athletes(athlete_id=None):
    """Lista los atletas autorizados (opcionalmente uno solo).

    Devuelve None si la base de datos no está disponible.
    """
    conn = get_db_connection()
    if conn is None:
        return None
    try:
        with conn.cursor() as cur:
            if athlete_id is None:
                cur.execute(f"SELECT {ATHLETE_COLUMNS} FROM athletes ORDER BY athlete_id")
            else:
                cur.execute(f"SELECT {ATHLETE_COLUMNS} FROM athletes WHERE athlete_id=%s", (athlete_id,))
            return [dict(row) for row in cur.fetchall()]
    except psycopg2.Error as e:
        logger.error("Error cargando atletas: %s", e)
        return None
    finally:
        conn.close()


def get_athlete(athlete_id):
    rows = list_athletes(athlete_id)
    if not rows:
        return None
    return rows[0]


def update_athlete_tokens(athlete_id, access_token, refresh_token, expires_at):
    """Actualiza los tokens tras un refresh."""
    conn = get_db_connection()
    if conn is None:
        return False
    try:
        with conn.cursor() as cur:
            cur.execute('''
                UPDATE athletes
                SET access_token = %s,
                    refresh_token = COALESCE(%s, refresh_token),
                    expires_at = %s,
                    updated_at = %s
                WHERE athlete_id = %s
            ''', (access_token, refresh_token, expires_at, datetime.now(timezone.utc), athlete_id))
            updated = cur.rowcount > 0
        conn.commit()
        return updated
    except psycopg2.Error as e:
        conn.rollback()
        logger.error("Error actualizando tokens del atleta %s: %s", athlete_id, e)
        return False
    finally:
        conn.close()
