import fitz

from app.services.completion_service import UpstreamError

BASE = "/api/v1/profiles"


def create_profile(api, name="Grade 6 MYP"):
    response = api.post(BASE, json={"name": name})
    assert response.status_code == 201
    return response.json()["id"]


def test_listing_bootstraps_default_profile(api):
    response = api.get(BASE)
    assert response.status_code == 200
    profiles = response.json()
    assert [p["name"] for p in profiles] == ["My Profile"]
    assert api.get(BASE).json() == profiles


def test_new_profile_has_default_state(api):
    profile_id = create_profile(api)
    state = api.get(f"{BASE}/{profile_id}/state").json()
    assert len(state["prompts"]) == 4
    assert state["topics"] == []
    assert state["redact"] is True
    assert state["allowNames"] is False
    assert state["messages"][0]["role"] == "system"


def test_blank_profile_name_is_rejected(api):
    assert api.post(BASE, json={"name": "   "}).status_code == 400


def test_unknown_profile_is_404(api):
    assert api.get(f"{BASE}/profile_missing/state").status_code == 404
    assert api.post(f"{BASE}/profile_missing/topics", json={"title": "X"}).status_code == 404


def test_state_can_be_replaced_and_read_back(api):
    profile_id = create_profile(api)
    state = api.get(f"{BASE}/{profile_id}/state").json()
    state["contextNotes"] = "Subject: Volcanoes"
    state["outputHtml"] = "<p>hi</p>"

    response = api.put(f"{BASE}/{profile_id}/state", json=state)

    assert response.status_code == 200
    assert api.get(f"{BASE}/{profile_id}/state").json() == state


def test_topic_workflow(api):
    profile_id = create_profile(api)
    state = api.post(f"{BASE}/{profile_id}/topics", json={"title": "Ecosystems", "description": "Unit 3"}).json()
    topic_id = state["topics"][0]["id"]
    assert state["selectedTopic"] == topic_id

    assert api.post(f"{BASE}/{profile_id}/topics", json={"title": ""}).status_code == 400
    assert api.post(f"{BASE}/{profile_id}/topics/topic_missing/select").status_code == 404

    state = api.delete(f"{BASE}/{profile_id}/topics/{topic_id}").json()
    assert state["topics"] == []
    assert state["selectedTopic"] == ""


def test_run_prompt_generates_output(api, fake_client):
    profile_id = create_profile(api)
    api.post(f"{BASE}/{profile_id}/topics", json={"title": "Ecosystems"})
    api.put(f"{BASE}/{profile_id}/settings", json={"curriculum": "IB MYP", "grade": "6"})
    api.put(f"{BASE}/{profile_id}/context", json={"notes": "Goals: food webs", "links": "https://a.org"})

    response = api.post(f"{BASE}/{profile_id}/prompts/btn-lesson-plan/run")

    assert response.status_code == 200
    body = response.json()
    assert body["reply"] == "Generated text"
    assert body["state"]["output"] == "Generated text"
    assert body["state"]["history"][0]["promptLabel"] == "Lesson plan"
    assert "LINKS:\nhttps://a.org" in fake_client.calls[0][-1]["content"]

    saved = api.get(f"{BASE}/{profile_id}/state").json()
    assert saved["output"] == "Generated text"
    assert len(saved["messages"]) == 3


def test_failed_generation_keeps_output_and_logs_error(api, fake_client):
    profile_id = create_profile(api)
    api.put(f"{BASE}/{profile_id}/output", json={"output": "Keep me"})
    fake_client.replies = [UpstreamError(500, "boom")]

    response = api.post(f"{BASE}/{profile_id}/prompts/btn-lesson-plan/run")

    assert response.status_code == 502
    saved = api.get(f"{BASE}/{profile_id}/state").json()
    assert saved["output"] == "Keep me"
    assert saved["history"] == []
    assert saved["logs"][0]["kind"] == "error"


def test_custom_prompt_chat_and_selection(api, fake_client):
    profile_id = create_profile(api)
    state = api.post(
        f"{BASE}/{profile_id}/prompts",
        json={"label": "Make MCQ", "template": "Can you write a MCQ for {{topic}} using the article in the {{context}}?"},
    ).json()
    prompt_id = state["prompts"][0]["id"]
    state = api.put(f"{BASE}/{profile_id}/prompts/{prompt_id}", json={"label": "MCQ x5"}).json()
    assert state["prompts"][0]["label"] == "MCQ x5"

    fake_client.replies = ["Q1. Q2.", "Q1 revised. Q2.", "Q1 simple"]
    api.post(f"{BASE}/{profile_id}/prompts/{prompt_id}/run")
    chat = api.post(f"{BASE}/{profile_id}/chat", json={"message": "revise Q1"}).json()
    assert chat["state"]["output"] == "Q1 revised. Q2."

    selection = api.post(
        f"{BASE}/{profile_id}/selection",
        json={"start": 0, "end": len("Q1 revised."), "instruction": "simplify"},
    ).json()
    assert selection["state"]["output"] == "Q1 simple Q2."
    assert [h["kind"] for h in selection["state"]["history"]] == ["selection", "chat", "generate"]

    first = selection["state"]["history"][-1]
    restored = api.post(f"{BASE}/{profile_id}/history/{first['id']}/load").json()
    assert restored["output"] == "Q1. Q2."


def test_invalid_selection_is_400(api):
    profile_id = create_profile(api)
    response = api.post(f"{BASE}/{profile_id}/selection", json={"start": 0, "end": 5, "instruction": "x"})
    assert response.status_code == 400


def test_privacy_toggles(api):
    profile_id = create_profile(api)
    state = api.put(f"{BASE}/{profile_id}/privacy", json={"redact": False, "allowNames": True}).json()
    assert state["redact"] is False
    assert state["allowNames"] is True
    assert [log["kind"] for log in state["logs"]] == ["privacy", "privacy"]


def test_attachments_upload_link_and_remove(api):
    profile_id = create_profile(api)
    doc = fitz.open()
    doc.new_page().insert_text((72, 72), "Photosynthesis basics")
    pdf = doc.tobytes()
    doc.close()

    response = api.post(
        f"{BASE}/{profile_id}/attachments",
        files=[
            ("files", ("notes.txt", b"Food webs", "text/plain")),
            ("files", ("article.pdf", pdf, "application/pdf")),
        ],
    )
    assert response.status_code == 200
    attachments = response.json()["attachments"]
    assert [a["name"] for a in attachments] == ["article.pdf", "notes.txt"]
    assert "Photosynthesis" in attachments[0]["content"]

    state = api.post(f"{BASE}/{profile_id}/attachments/link", json={"url": "https://example.org"}).json()
    assert state["attachments"][0]["kind"] == "link"

    state = api.delete(f"{BASE}/{profile_id}/attachments/{state['attachments'][0]['id']}").json()
    assert len(state["attachments"]) == 2


def test_activate_logs_profile_switch(api):
    profile_id = create_profile(api, "Grade 7 Science")
    state = api.post(f"{BASE}/{profile_id}/activate").json()
    assert state["logs"][0]["kind"] == "profile"
    assert "Grade 7 Science" in state["logs"][0]["detail"]


def test_options_and_busy_flag(api):
    options = api.get(f"{BASE}/options").json()
    assert "IB MYP" in options["curricula"]
    assert options["grades"][0] == "K"
    assert options["placeholders"] == ["{{topic}}", "{{context}}", "{{curriculum}}", "{{grade}}"]
    assert options["default_template"] == "Can you write a MCQ for {{topic}} using the article in the {{context}}?"

    profile_id = create_profile(api)
    assert api.get(f"{BASE}/{profile_id}/busy").json() == {"busy": False}


def test_unknown_profiles_return_404_and_leave_no_locks(api, manager):
    for i in range(5):
        assert api.get(f"{BASE}/profile_missing_{i}/busy").status_code == 404
        assert api.put(f"{BASE}/profile_missing_{i}/context", json={"notes": "x"}).status_code == 404
        assert api.post(f"{BASE}/profile_missing_{i}/chat", json={"message": "hi"}).status_code == 404
    assert manager._locks == {}
