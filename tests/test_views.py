from heirlooms.views import ViewCache, fingerprint


class TestViewCache:
    def test_same_stamp_serves_cached_page(self):
        views = ViewCache()
        renders = []

        def render():
            renders.append(1)
            return f"page {len(renders)}"

        assert views.get_or_render("/artifacts/1", "v1", render) == "page 1"
        assert views.get_or_render("/artifacts/1", "v1", render) == "page 1"
        assert len(renders) == 1

    def test_changed_stamp_rerenders(self):
        """A record changed elsewhere yields a new stamp and a fresh page."""
        views = ViewCache()
        views.get_or_render("/artifacts/1", "v1", lambda: "old")
        assert views.get_or_render("/artifacts/1", "v2", lambda: "new") == "new"
        assert views.get_or_render("/artifacts/1", "v2", lambda: "unused") == "new"

    def test_stale_render_is_replaced_on_next_read(self):
        """HTML stored from an outdated read does not outlive the record change."""
        views = ViewCache()
        views.get_or_render("/artifacts/1", "before", lambda: "stale html")
        views.invalidate_artifact("1")
        views.get_or_render("/artifacts/1", "before", lambda: "stale html")

        assert views.get_or_render("/artifacts/1", "after", lambda: "fresh html") == "fresh html"

    def test_invalidate_artifact_drops_detail_and_edit(self):
        views = ViewCache()
        for path in ("/artifacts/1", "/artifacts/1/edit", "/artifacts/2"):
            views.get_or_render(path, "v1", lambda: "html")

        views.invalidate_artifact("1")

        assert "/artifacts/1" not in views
        assert "/artifacts/1/edit" not in views
        assert "/artifacts/2" in views


def test_fingerprint_tracks_content():
    record = {"id": "1", "analysis_status": "done", "ai_description": "A box."}
    assert fingerprint(record, None) == fingerprint(dict(record), None)
    assert fingerprint(record, None) != fingerprint({**record, "ai_description": "A chest."}, None)
    assert fingerprint(record, None) != fingerprint(record, {"slug": "letters"})
