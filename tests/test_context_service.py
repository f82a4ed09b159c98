from app.schemas import Attachment, ClassSettings, Topic
from app.services.context_service import build_context, format_links, parse_note_keys


def test_empty_inputs_produce_explicit_none_markers():
    bundle = build_context()
    assert bundle.context == "NOTES:\n(none)\nLINKS:\n(none)\nATTACHMENTS: (none)"
    assert bundle.topic_text == "your class topic"
    assert bundle.curriculum == "unspecified curriculum"
    assert bundle.grade == "unspecified grade"
    assert bundle.level == "unspecified"
    assert bundle.goals == "unspecified"
    assert bundle.task == "the described task"
    assert bundle.subject == "the subject"


def test_note_keys_are_lowercased_and_non_matching_lines_ignored():
    keys = parse_note_keys("Subject: Ecosystems\nLevel: Grade 6\nremember the field trip\nFood Web: yes")
    assert keys == {"subject": "Ecosystems", "level": "Grade 6", "food web": "yes"}


def test_notes_populate_bundle_and_stay_verbatim_in_context():
    notes = "Subject: Ecosystems\nGoals: food webs, energy transfer\nTask: create poster\nbring markers"
    bundle = build_context(notes=notes)
    assert bundle.topic_text == "Ecosystems"
    assert bundle.subject == "Ecosystems"
    assert bundle.goals == "food webs, energy transfer"
    assert bundle.task == "create poster"
    assert bundle.context.startswith("NOTES:\n" + notes + "\nLINKS:")


def test_topic_key_wins_over_subject_key():
    bundle = build_context(notes="Subject: Science\nTopic: Volcanoes")
    assert bundle.topic_text == "Volcanoes"
    assert bundle.subject == "Science"


def test_selected_topic_wins_over_notes():
    topics = [Topic(id="topic_a", title="Fractions"), Topic(id="topic_b", title="Decimals")]
    bundle = build_context(notes="Topic: Volcanoes", topics=topics, selected_topic="topic_b")
    assert bundle.topic_text == "Decimals"


def test_unknown_selected_topic_falls_back():
    bundle = build_context(topics=[Topic(id="topic_a", title="Fractions")], selected_topic="missing")
    assert bundle.topic_text == "your class topic"


def test_settings_are_used_when_set():
    bundle = build_context(settings=ClassSettings(curriculum="IB DP", grade="11"))
    assert bundle.curriculum == "IB DP"
    assert bundle.grade == "11"


def test_links_are_split_and_joined():
    assert format_links(" https://a.org, https://b.org;https://c.org\n\nhttps://d.org ") == (
        "https://a.org, https://b.org, https://c.org, https://d.org"
    )
    bundle = build_context(links="https://a.org https://b.org")
    assert "LINKS:\nhttps://a.org, https://b.org" in bundle.context


def test_only_text_attachments_contribute_truncated_snippets():
    attachments = [
        Attachment(id="att_1", name="article.txt", kind="text", content="x" * 1500),
        Attachment(id="att_2", name="video", kind="link", content="https://video.example"),
        Attachment(id="att_3", name="notes.txt", kind="text", content="short"),
    ]
    bundle = build_context(attachments=attachments)
    lines = bundle.context.split("\n")
    start = lines.index("ATTACHMENTS (snippets):")
    assert lines[start + 1] == "[article.txt] " + "x" * 1200
    assert lines[start + 2] == "[notes.txt] short"
    assert "video.example" not in bundle.context


def test_link_only_attachments_mark_section_as_none():
    attachments = [Attachment(id="att_2", name="video", kind="link", content="https://video.example")]
    assert build_context(attachments=attachments).context.endswith("ATTACHMENTS: (none)")
