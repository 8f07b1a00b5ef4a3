import io
import threading

from PyPDF2 import PdfReader

from projectsign.config import get_settings
from projectsign.errors import INVALID_LINK_MESSAGE
from projectsign.modules.auth.models.user import User
from projectsign.modules.forms.models.form import Form
from projectsign.modules.forms.models.signing_token import SigningToken
from projectsign.modules.forms.services.integrity import compute_hash
from projectsign.modules.forms.services.pdf_service import PdfJob, PdfService
from projectsign.modules.notifications.services.senders import DispatchResult
from projectsign.modules.projects.models.project import Contact

from conftest import signature_data_uri


def create_project(client, headers, name="שיפוץ מטבח", contact=True):
    body = {"name": name, "description": "החלפת ארונות"}
    if contact:
        body["contact"] = {"name": "יוסי לוי", "phone": "052-7654321", "email": "yossi@example.com"}
    resp = client.post("/projects", json=body, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def create_form(client, headers, project_id, form_type, data):
    resp = client.post(f"/projects/{project_id}/forms", json={"type": form_type, "data": data}, headers=headers)
    assert resp.status_code == 201, resp.text
    return resp.json()


def send_link(client, headers, form_id):
    resp = client.post(f"/forms/{form_id}/send", json={"method": "link"}, headers=headers)
    assert resp.status_code == 200, resp.text
    return resp.json()["token"]


def sign(client, token, signature_data, signer="יוסי לוי", amended=None, headers=None):
    body = {"signerName": signer, "signatureData": signature_data}
    if amended is not None:
        body["amendedFields"] = amended
    return client.post(f"/sign-api/{token}", json=body, headers=headers or {})


# --- Autenticación y propiedad ---

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"status": "ok"}
    assert resp.headers.get("X-Request-ID")


def test_rutas_de_propietario_requieren_sesion(client):
    resp = client.get("/projects")
    assert resp.status_code == 401
    assert "error" in resp.json()

    resp = client.get("/projects", headers={"Authorization": "Bearer not-a-jwt"})
    assert resp.status_code == 401


def test_login_invalido(client, auth_headers):
    resp = client.post("/auth/login", json={"email": "owner@example.com", "password": "wrong-pass"})
    assert resp.status_code == 401


def test_registro_duplicado(client, auth_headers):
    resp = client.post("/auth/register", json={
        "email": "owner@example.com", "password": "secret123", "full_name": "Otra Persona"
    })
    assert resp.status_code == 400


def test_me(client, auth_headers):
    resp = client.get("/auth/me", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["email"] == "owner@example.com"


def test_usuario_inactivo_es_403(client, auth_headers, session_factory):
    s = session_factory()
    user = s.query(User).filter_by(email="owner@example.com").one()
    user.is_active = False
    s.commit()
    s.close()

    resp = client.get("/projects", headers=auth_headers)
    assert resp.status_code == 403
    assert resp.json() == {"error": "Usuario inactivo"}


def test_recursos_ajenos_son_404(client, auth_headers, other_headers, quote_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)

    assert client.get(f"/projects/{project['id']}", headers=other_headers).status_code == 404
    assert client.get(f"/projects/{project['id']}/forms", headers=other_headers).status_code == 404
    assert client.post(
        f"/projects/{project['id']}/forms", json={"type": "quote", "data": quote_data}, headers=other_headers
    ).status_code == 404
    assert client.get(f"/forms/{form['id']}", headers=other_headers).status_code == 404
    assert client.patch(f"/forms/{form['id']}", json={"data": quote_data}, headers=other_headers).status_code == 404
    assert client.delete(f"/forms/{form['id']}", headers=other_headers).status_code == 404
    assert client.post(
        f"/forms/{form['id']}/send", json={"method": "link"}, headers=other_headers
    ).status_code == 404
    assert client.get(f"/forms/{form['id']}/pdf", headers=other_headers).status_code == 404

    assert client.get("/projects", headers=other_headers).json()["total"] == 0


# --- Proyectos ---

def test_crear_y_listar_proyectos(client, auth_headers):
    project = create_project(client, auth_headers)
    assert project["status"] == "draft"
    assert project["contact"]["name"] == "יוסי לוי"

    listed = client.get("/projects", headers=auth_headers).json()
    assert listed["total"] == 1
    assert listed["projects"][0]["id"] == project["id"]


def test_proyecto_sin_nombre_es_400(client, auth_headers):
    resp = client.post("/projects", json={"name": ""}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid data"


def test_transiciones_de_estado(client, auth_headers):
    project = create_project(client, auth_headers)
    url = f"/projects/{project['id']}/status"

    resp = client.patch(url, json={"status": "paid"}, headers=auth_headers)
    assert resp.status_code == 400

    resp = client.patch(url, json={"status": "cancelled"}, headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["status"] == "cancelled"

    resp = client.patch(url, json={"status": "draft"}, headers=auth_headers)
    assert resp.json()["status"] == "draft"


def test_editar_proyecto_y_crear_contacto(client, auth_headers):
    project = create_project(client, auth_headers, contact=False)
    url = f"/projects/{project['id']}"

    resp = client.patch(url, json={
        "name": "שיפוץ אמבטיה",
        "contact": {"name": "רונית", "phone": "050-1112233", "email": ""},
    }, headers=auth_headers)
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["name"] == "שיפוץ אמבטיה"
    assert body["description"] == "החלפת ארונות"
    assert body["status"] == "draft"
    assert body["contact"]["name"] == "רונית"
    assert body["contact"]["email"] is None
    contact_id = body["contact"]["id"]

    # Con contacto existente se actualiza el mismo registro
    resp = client.patch(url, json={
        "description": "",
        "contact": {"name": "רונית לוי", "city": "חיפה"},
    }, headers=auth_headers)
    body = resp.json()
    assert body["description"] is None
    assert body["name"] == "שיפוץ אמבטיה"
    assert body["contact"]["id"] == contact_id
    assert body["contact"]["name"] == "רונית לוי"
    assert body["contact"]["city"] == "חיפה"
    assert body["contact"]["phone"] is None


def test_editar_proyecto_invalido_o_ajeno(client, auth_headers, other_headers):
    project = create_project(client, auth_headers)
    url = f"/projects/{project['id']}"

    assert client.patch(url, json={"name": ""}, headers=auth_headers).status_code == 400
    assert client.patch(url, json={"contact": {"name": ""}}, headers=auth_headers).status_code == 400
    assert client.patch(url, json={"name": "x"}, headers=other_headers).status_code == 404
    assert client.delete(url, headers=other_headers).status_code == 404
    assert client.get(url, headers=auth_headers).json()["name"] == "שיפוץ מטבח"


def test_borrar_proyecto_borra_formularios_y_enlaces(client, auth_headers, session_factory, quote_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])

    resp = client.delete(f"/projects/{project['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    assert client.get(f"/projects/{project['id']}", headers=auth_headers).status_code == 404
    assert client.get(f"/forms/{form['id']}", headers=auth_headers).status_code == 404
    assert client.get(f"/sign-api/{token}").status_code == 404
    s = session_factory()
    assert s.query(SigningToken).filter_by(token=token).first() is None
    assert s.query(Contact).filter_by(project_id=project["id"]).first() is None
    s.close()


def test_proyecto_con_formulario_firmado_no_se_borra(client, auth_headers, session_factory, quote_data, signature_data):
    project = create_project(client, auth_headers)
    signed = create_form(client, auth_headers, project["id"], "quote", quote_data)
    draft = create_form(client, auth_headers, project["id"], "quote", quote_data)
    draft_token = send_link(client, auth_headers, draft["id"])
    assert sign(client, send_link(client, auth_headers, signed["id"]), signature_data).status_code == 200

    resp = client.delete(f"/projects/{project['id']}", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "already signed"

    # Nada se borró, tampoco el borrador ni su enlace
    assert client.get(f"/projects/{project['id']}", headers=auth_headers).status_code == 200
    listed = client.get(f"/projects/{project['id']}/forms", headers=auth_headers).json()
    assert {f["id"] for f in listed["forms"]} == {signed["id"], draft["id"]}
    assert client.get(f"/sign-api/{draft_token}").status_code == 200


def test_crear_formularios_actualiza_estado_del_proyecto(
    client, auth_headers, work_approval_data, completion_data, payment_data
):
    project = create_project(client, auth_headers)
    pid = project["id"]

    create_form(client, auth_headers, pid, "work_approval", work_approval_data)
    assert client.get(f"/projects/{pid}", headers=auth_headers).json()["status"] == "approved"

    create_form(client, auth_headers, pid, "completion", completion_data)
    assert client.get(f"/projects/{pid}", headers=auth_headers).json()["status"] == "completed"

    create_form(client, auth_headers, pid, "payment", dict(payment_data, remaining_balance=100))
    assert client.get(f"/projects/{pid}", headers=auth_headers).json()["status"] == "completed"

    create_form(client, auth_headers, pid, "payment", payment_data)
    assert client.get(f"/projects/{pid}", headers=auth_headers).json()["status"] == "paid"

    forms = client.get(f"/projects/{pid}/forms", headers=auth_headers).json()
    assert forms["total"] == 4
    assert [f["type"] for f in forms["forms"]] == ["work_approval", "completion", "payment", "payment"]


# --- Formularios ---

def test_contenido_invalido_es_400_con_detalles(client, auth_headers, work_approval_data):
    project = create_project(client, auth_headers)
    resp = client.post(
        f"/projects/{project['id']}/forms",
        json={"type": "work_approval", "data": dict(work_approval_data, contact_phone="123")},
        headers=auth_headers
    )
    assert resp.status_code == 400
    body = resp.json()
    assert body["details"][0]["loc"] == ["contact_phone"]

    resp = client.post(
        f"/projects/{project['id']}/forms",
        json={"type": "work_approval", "data": dict(work_approval_data, infrastructure_declaration=False)},
        headers=auth_headers
    )
    assert resp.status_code == 400


def test_editar_formulario_sin_firmar(client, auth_headers, quote_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    assert form["integrity_status"] == "unsigned"
    assert form["data"]["vat_rate"] == 0.17

    resp = client.patch(f"/forms/{form['id']}", json={"data": dict(quote_data, notes="כולל חומרים")},
                        headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json()["data"]["notes"] == "כולל חומרים"


def test_borrar_formulario_sin_firmar_invalida_enlaces(client, auth_headers, session_factory, quote_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])

    resp = client.delete(f"/forms/{form['id']}", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    assert client.get(f"/forms/{form['id']}", headers=auth_headers).status_code == 404
    assert client.get(f"/sign-api/{token}").status_code == 404
    s = session_factory()
    assert s.query(SigningToken).count() == 0
    s.close()


def test_formulario_firmado_es_inmutable(client, auth_headers, quote_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])
    assert sign(client, token, signature_data).status_code == 200
    before = client.get(f"/forms/{form['id']}", headers=auth_headers).json()

    resp = client.patch(f"/forms/{form['id']}", json={"data": dict(quote_data, total=1)}, headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "already signed"

    resp = client.delete(f"/forms/{form['id']}", headers=auth_headers)
    assert resp.status_code == 400
    assert resp.json()["error"] == "already signed"

    resp = client.post(f"/forms/{form['id']}/send", json={"method": "link"}, headers=auth_headers)
    assert resp.status_code == 400

    assert client.get(f"/forms/{form['id']}", headers=auth_headers).json() == before


# --- Envío ---

def test_enviar_por_enlace(client, auth_headers, quote_data, email_sender, sms_sender):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)

    resp = client.post(f"/forms/{form['id']}/send", json={"method": "link"}, headers=auth_headers)
    assert resp.status_code == 200
    body = resp.json()
    assert body["signingUrl"].endswith(f"/sign/{body['token']}")
    assert body["expiresAt"]
    assert body["dispatched"] is None
    assert email_sender.sent == [] and sms_sender.sent == []
    # Un enlace no cambia el estado del proyecto
    assert client.get(f"/projects/{project['id']}", headers=auth_headers).json()["status"] == "draft"


def test_enviar_cotizacion_por_email(client, auth_headers, quote_data, email_sender):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)

    resp = client.post(
        f"/forms/{form['id']}/send",
        json={"method": "email", "email": "yossi@example.com"},
        headers=auth_headers
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["dispatched"] is True

    [message] = email_sender.sent
    assert message.recipient == "yossi@example.com"
    assert body["signingUrl"] in message.body
    assert "יוסי לוי" in message.body

    stored = client.get(f"/forms/{form['id']}", headers=auth_headers).json()
    assert stored["sent_via"] == "email"
    assert stored["sent_at"] is not None
    assert client.get(f"/projects/{project['id']}", headers=auth_headers).json()["status"] == "quote_sent"


def test_enviar_por_sms(client, auth_headers, work_approval_data, sms_sender):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "work_approval", work_approval_data)

    resp = client.post(
        f"/forms/{form['id']}/send", json={"method": "sms", "phone": "0501234567"}, headers=auth_headers
    )
    assert resp.status_code == 200
    assert resp.json()["dispatched"] is True
    [message] = sms_sender.sent
    assert message.recipient == "0501234567"
    assert resp.json()["signingUrl"] in message.body


def test_enviar_sin_destinatario_es_400(client, auth_headers, quote_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)

    assert client.post(f"/forms/{form['id']}/send", json={"method": "email"},
                       headers=auth_headers).status_code == 400
    assert client.post(f"/forms/{form['id']}/send", json={"method": "sms"},
                       headers=auth_headers).status_code == 400
    assert client.post(f"/forms/{form['id']}/send", json={"method": "fax"},
                       headers=auth_headers).status_code == 400


def test_falla_del_proveedor_no_invalida_el_enlace(client, auth_headers, quote_data, email_sender):
    email_sender.result = DispatchResult(False, "Email provider error (503)")
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)

    resp = client.post(
        f"/forms/{form['id']}/send",
        json={"method": "email", "email": "yossi@example.com"},
        headers=auth_headers
    )
    assert resp.status_code == 200
    body = resp.json()
    assert body["dispatched"] is False
    assert body["dispatchError"] == "Email provider error (503)"

    assert client.get(f"/sign-api/{body['token']}").status_code == 200
    assert client.get(f"/projects/{project['id']}", headers=auth_headers).json()["status"] == "draft"
    assert client.get(f"/forms/{form['id']}", headers=auth_headers).json()["sent_via"] is None


# --- Firma pública ---

def test_enlace_invalido_es_404_con_mensaje_unico(client):
    resp = client.get("/sign-api/does-not-exist")
    assert resp.status_code == 404
    assert resp.json() == {"error": INVALID_LINK_MESSAGE}


def test_vista_de_firma_no_expone_datos_del_propietario(client, auth_headers, quote_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])

    body = client.get(f"/sign-api/{token}").json()
    assert set(body) == {"id", "type", "data", "project_name", "contact_name"}
    assert body["project_name"] == "שיפוץ מטבח"
    assert body["contact_name"] == "יוסי לוי"


def test_vista_de_firma_sin_contacto(client, auth_headers, quote_data):
    project = create_project(client, auth_headers, contact=False)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])
    assert client.get(f"/sign-api/{token}").json()["contact_name"] == ""


def test_flujo_completo_cotizacion(client, auth_headers, quote_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])

    assert client.get(f"/sign-api/{token}").status_code == 200
    resp = sign(client, token, signature_data, headers={
        "X-Forwarded-For": "203.0.113.7, 10.0.0.1", "User-Agent": "Mobile Safari"
    })
    assert resp.status_code == 200
    assert resp.json() == {"success": True}

    stored = client.get(f"/forms/{form['id']}", headers=auth_headers).json()
    assert stored["signed_by"] == "יוסי לוי"
    assert stored["signer_ip"] == "203.0.113.7"
    assert stored["signer_user_agent"] == "Mobile Safari"
    assert stored["signature_hash"] == compute_hash(stored["data"])
    assert stored["integrity_status"] == "valid"

    # El token ya no sirve
    assert client.get(f"/sign-api/{token}").status_code == 404
    resp = sign(client, token, signature_data)
    assert resp.status_code == 404
    assert resp.json()["error"] == INVALID_LINK_MESSAGE


def test_flujo_completo_con_enmiendas(client, auth_headers, completion_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "completion", completion_data)
    token = send_link(client, auth_headers, form["id"])

    resp = sign(client, token, signature_data, amended={
        "satisfaction_overall": 4, "satisfaction_appearance": 3, "feedback_notes": "תודה רבה"
    })
    assert resp.status_code == 200

    stored = client.get(f"/forms/{form['id']}", headers=auth_headers).json()
    assert stored["data"]["satisfaction_overall"] == 4
    assert stored["data"]["satisfaction_appearance"] == 3
    assert stored["data"]["feedback_notes"] == "תודה רבה"
    assert stored["integrity_status"] == "valid"
    assert stored["signature_hash"] == compute_hash(stored["data"])


def test_enmienda_de_satisfaccion_queda_en_el_hash(client, auth_headers, completion_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "completion", completion_data)
    assert form["data"]["satisfaction_overall"] == 5
    token = send_link(client, auth_headers, form["id"])

    resp = sign(client, token, signature_data, amended={
        "satisfaction_overall": 3, "feedback_notes": "Delayed by two days"
    })
    assert resp.status_code == 200

    stored = client.get(f"/forms/{form['id']}", headers=auth_headers).json()
    assert stored["data"]["satisfaction_overall"] == 3
    assert stored["data"]["feedback_notes"] == "Delayed by two days"
    assert stored["signature_hash"] == compute_hash(stored["data"])
    assert stored["signature_hash"] != compute_hash(form["data"])
    assert stored["integrity_status"] == "valid"


def test_firma_invalida_no_consume_el_enlace(client, auth_headers, quote_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])

    blank = signature_data_uri(size=(400, 200), strokes=False)
    assert sign(client, token, blank).status_code == 400
    assert sign(client, token, signature_data, signer="   ").status_code == 400
    resp = client.post(f"/sign-api/{token}", json={"signatureData": signature_data})
    assert resp.status_code == 400
    assert resp.json()["error"] == "Invalid data"

    assert sign(client, token, signature_data).status_code == 200


def test_un_enlace_nuevo_no_revive_uno_usado(client, auth_headers, quote_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    first = send_link(client, auth_headers, form["id"])
    second = send_link(client, auth_headers, form["id"])

    assert sign(client, second, signature_data).status_code == 200
    # Los demás enlaces del formulario se invalidan al firmar
    assert client.get(f"/sign-api/{first}").status_code == 404


# --- Integridad y PDF ---

def test_pdf_de_formulario_firmado(client, auth_headers, quote_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])
    assert sign(client, token, signature_data).status_code == 200
    stored = client.get(f"/forms/{form['id']}", headers=auth_headers).json()

    resp = client.get(f"/forms/{form['id']}/pdf", headers=auth_headers)
    assert resp.status_code == 200
    assert resp.headers["content-type"] == "application/pdf"
    assert f'filename="quote-{form["id"]}.pdf"' in resp.headers["content-disposition"]

    reader = PdfReader(io.BytesIO(resp.content))
    assert len(reader.pages) >= 1
    assert reader.metadata["/ProjectSignFormId"] == str(form["id"])
    assert reader.metadata["/ProjectSignSignatureHash"] == stored["signature_hash"]


def test_pdf_de_formulario_sin_firmar(client, auth_headers, work_approval_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "work_approval", work_approval_data)

    resp = client.get(f"/forms/{form['id']}/pdf", headers=auth_headers)
    assert resp.status_code == 200
    reader = PdfReader(io.BytesIO(resp.content))
    assert "/ProjectSignSignatureHash" not in reader.metadata


def test_contenido_alterado_se_detecta(client, auth_headers, session_factory, quote_data, signature_data):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])
    assert sign(client, token, signature_data).status_code == 200

    # Modificación por fuera de la API
    s = session_factory()
    stored = s.get(Form, form["id"])
    stored.data = dict(stored.data, total=1)
    s.commit()
    s.close()

    body = client.get(f"/forms/{form['id']}", headers=auth_headers).json()
    assert body["integrity_status"] == "tampered"

    resp = client.get(f"/forms/{form['id']}/pdf", headers=auth_headers)
    assert resp.status_code == 400
    assert "hash" in resp.json()["error"]


def test_pdf_que_excede_el_tiempo_es_502(client, auth_headers, quote_data, signature_data, monkeypatch):
    project = create_project(client, auth_headers)
    form = create_form(client, auth_headers, project["id"], "quote", quote_data)
    token = send_link(client, auth_headers, form["id"])
    assert sign(client, token, signature_data).status_code == 200

    release = threading.Event()
    received = []

    def slow_render(job):
        received.append(job)
        release.wait(5)

    monkeypatch.setattr(PdfService, "render", slow_render)
    monkeypatch.setattr(get_settings(), "pdf_render_timeout_seconds", 0.1)
    try:
        resp = client.get(f"/forms/{form['id']}/pdf", headers=auth_headers)
    finally:
        release.set()

    assert resp.status_code == 502
    assert "timed out" in resp.json()["error"]
    # El render recibió valores ya cargados, no objetos de la sesión
    [job] = received
    assert isinstance(job, PdfJob)
    assert job.render_args["data"]["total"] == quote_data["total"]
    assert job.render_args["signature_image"]
