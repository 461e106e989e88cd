import logging
import time
from datetime import datetime, timezone

import pandas as pd
import requests
import streamlit as st

from backend import config
from backend import db
from backend import strava
from backend.leaderboard import build_leaderboard, format_pace, parse_target_to_epoch

# --- 1. Configuración y Constantes ---
config.setup_logging()
logger = logging.getLogger("leaderboard_ui")

MEDAL_ICONS = {'gold': '🥇', 'silver': '🥈', 'bronze': '🥉'}

ERROR_MESSAGES = {
    'not_in_club': "Tu cuenta de Strava no es miembro del club requerido.",
    'invalid_club_id': "El club está mal configurado. Contacta con el administrador.",
    'club_check_failed': "No se pudo verificar tu pertenencia al club. Inténtalo más tarde.",
}

st.set_page_config(
        page_title="VEC Running Leaderboard",
        page_icon="🏃",
        layout="wide",
        initial_sidebar_state="collapsed"
    )

if not config.CLIENT_ID or not config.CLIENT_SECRET:
    st.error("🚨 CONFIGURACIÓN FALTANTE: Configura 'STRAVA_CLIENT_ID' y 'STRAVA_CLIENT_SECRET' en .env o variables de entorno")


# --- 2. OAuth y sesión ---

def handle_oauth_callback(code):
    """Intercambia el código de autorización por tokens y guarda los datos del atleta."""
    try:
        data = strava.exchange_code(code)
    except (strava.StravaApiError, requests.RequestException) as e:
        logger.warning("Fallo en el login con Strava: %s", e)
        st.error("Error en la autenticación con Strava. Intenta de nuevo.")
        st.session_state['logged_in'] = False
        return

    if config.CLUB_ID:
        club_error = strava.check_club_membership(data['access_token'], config.CLUB_ID)
        if club_error:
            st.session_state['auth_error'] = club_error
            st.session_state['logged_in'] = False
            return

    athlete = data.get('athlete') or {}
    if athlete.get('id'):
        db.upsert_athlete(athlete, data)
    st.session_state['logged_in'] = True
    st.session_state['athlete_id'] = athlete.get('id')
    st.session_state['current_token'] = data['access_token']
    st.session_state['athlete_name'] = f"{athlete.get('firstname', '')} {athlete.get('lastname', '')}".strip()
    st.session_state.pop('auth_error', None)


def get_valid_token(athlete_id):
    """Devuelve un token válido (refresca si es necesario)."""
    row = db.get_athlete(athlete_id) if athlete_id else None
    if not row:
        return st.session_state.get('current_token')
    token = strava.ensure_access_token(row)
    if token:
        st.session_state['current_token'] = token
    return token


def logout():
    for key in ('logged_in', 'athlete_id', 'current_token', 'athlete_name'):
        st.session_state.pop(key, None)
    st.session_state['logged_in'] = False


# --- 3. Datos ---

@st.cache_data(ttl=300)
def load_leaderboard_data():
    """Carga atletas de la base de datos y calcula el leaderboard."""
    athletes = db.list_athletes()
    if not athletes:
        return {'leaderboard': [], 'monthly': []}
    return build_leaderboard(athletes, after=config.START_DATE, target=config.TARGET_DATE)


# --- 4. Interfaz de Streamlit ---

def render_countdown(target_epoch):
    remaining = max(0, int(target_epoch - time.time()))
    days, rem = divmod(remaining, 86400)
    hours, rem = divmod(rem, 3600)
    minutes = rem // 60
    target_label = datetime.fromtimestamp(target_epoch, tz=timezone.utc).strftime('%d %b %Y')
    st.markdown(f"⏳ **Faltan {days:02d}d {hours:02d}h {minutes:02d}m** para el {target_label}")


def display_leaderboard(rows):
    """Muestra la tabla del ranking general con la proyección."""
    st.subheader(f"Ranking desde {config.START_DATE}")
    df = pd.DataFrame(rows)
    df['Pos'] = df.apply(lambda r: f"{MEDAL_ICONS.get(r['medal'], '')} {r['position']}".strip(), axis=1)
    df['Ritmo medio'] = df['average_pace_min_per_km'].map(format_pace)
    df['Mejor ritmo'] = df['best_pace_min_per_km'].map(format_pace)
    df['Última carrera'] = df['last_run'].fillna('-').astype(str).str.slice(0, 10)

    table = df[[
        'Pos', 'athlete_name', 'total_runs', 'projected_runs', 'projected_runs_weekly',
        'avg_runs_per_month', 'total_distance_km', 'max_distance_km', 'total_run_time_hms',
        'average_run_time_mins', 'Ritmo medio', 'Mejor ritmo', 'Última carrera',
    ]].rename(columns={
        'athlete_name': 'Atleta',
        'total_runs': 'Carreras',
        'projected_runs': 'Proyección',
        'projected_runs_weekly': 'Proyección (semanas)',
        'avg_runs_per_month': 'Media/mes',
        'total_distance_km': 'Km totales',
        'max_distance_km': 'Km máx',
        'total_run_time_hms': 'Tiempo total',
        'average_run_time_mins': 'Carrera media (min)',
    })

    st.dataframe(
        table.style.bar(subset=['Carreras'], color='#5c7cfa', align='left'),
        use_container_width=True,
        hide_index=True
    )
    st.caption("Proyección: carreras estimadas a la fecha objetivo según la densidad de días activos "
               "y la constancia (hueco de inactividad más largo).")


def display_monthly(monthly):
    """Desglose mensual: una pestaña por mes."""
    st.subheader("Estadísticas mensuales")
    tabs = st.tabs([m['label'] for m in monthly])
    for tab, month in zip(tabs, monthly):
        with tab:
            df = pd.DataFrame(month['runners'])
            if df.empty:
                st.info("Sin carreras este mes.")
                continue
            df['Ritmo medio'] = df['average_pace_min_per_km'].map(format_pace)
            df['Mejor ritmo'] = df['best_pace_min_per_km'].map(format_pace)
            table = df[['athlete_name', 'runs', 'total_distance_km', 'max_distance_km',
                        'total_run_time_hms', 'Ritmo medio', 'Mejor ritmo']].rename(columns={
                'athlete_name': 'Atleta',
                'runs': 'Días activos',
                'total_distance_km': 'Km totales',
                'max_distance_km': 'Km máx',
                'total_run_time_hms': 'Tiempo total',
            })
            st.dataframe(table, use_container_width=True, hide_index=True)


def app():
    st.title("🏃‍♂️ VEC Running Leaderboard")
    render_countdown(parse_target_to_epoch(config.TARGET_DATE))

    if 'logged_in' not in st.session_state:
        st.session_state['logged_in'] = False
        st.session_state['athlete_id'] = None

    query_params = st.query_params

    if 'code' in query_params and not st.session_state['logged_in']:
        handle_oauth_callback(query_params['code'])
        st.query_params.clear()

    auth_error = st.session_state.get('auth_error') or query_params.get('error')
    if auth_error:
        st.error(ERROR_MESSAGES.get(auth_error, ERROR_MESSAGES['club_check_failed']))

    if not st.session_state['logged_in']:
        st.markdown("Conéctate con Strava para sincronizar tus carreras y ver el leaderboard del club.")
        col_btn1, col_btn2, col_btn3 = st.columns([1, 2, 1])
        with col_btn2:
            st.link_button("🔗 Iniciar Sesión con Strava", strava.authorize_url(),
                           use_container_width=True, type="primary")
        return

    valid_token = get_valid_token(st.session_state['athlete_id'])
    if not valid_token:
        st.warning("Tu sesión ha expirado o hubo un error al refrescar el token. Por favor, vuelve a iniciar sesión.")
        logout()
        return

    col_info, col_logout = st.columns([4, 1])
    with col_info:
        st.success(f"Conectado como: **{st.session_state.get('athlete_name') or 'Atleta'}**")
    with col_logout:
        if st.button("Cerrar sesión", use_container_width=True):
            logout()
            st.rerun()

    if st.button("🔄 Actualizar leaderboard"):
        load_leaderboard_data.clear()

    with st.spinner('Consultando actividades en Strava...'):
        data = load_leaderboard_data()

    if not data['leaderboard']:
        st.info("Aún no hay carreras registradas. Vuelve a intentarlo más tarde.")
        return

    display_leaderboard(data['leaderboard'])
    st.markdown("---")
    if data['monthly']:
        display_monthly(data['monthly'])


if __name__ == "__main__":
    db.init_db()
    app()
