from __future__ import annotations

import html
import json

from lidarview.models import DatasetStatus, MapConfig


VIEWER_PAGE = """
<!doctype html>
<html lang="en">
  <head>
    <meta charset="utf-8" />
    <meta name="viewport" content="width=device-width, initial-scale=1" />
    <title>__TITLE__</title>
    <link rel="stylesheet" href="https://unpkg.com/maplibre-gl@4/dist/maplibre-gl.css" />
    <style>
      html, body { margin: 0; height: 100%; font-family: Arial, sans-serif; }
      .app { display: flex; height: 100%; }
      .sidebar { width: 280px; padding: 1rem; background: #111827; color: #e5e7eb; overflow-y: auto; }
      .sidebar h1 { font-size: 1.1rem; }
      .sidebar h3 { font-size: .85rem; text-transform: uppercase; color: #9ca3af; }
      .sidebar button { margin-right: .25rem; }
      .sidebar button.active { background: #0f766e; color: white; }
      .sidebar label { display: block; margin: .35rem 0; cursor: pointer; }
      #map { flex: 1; }
      .overlay { position: absolute; right: 1rem; bottom: 2rem; width: 260px; padding: .75rem;
                 border-radius: 10px; background: rgba(17, 24, 39, .9); color: #e5e7eb; display: none; }
      .overlay.visible { display: block; }
      .bar { height: 6px; background: #374151; border-radius: 3px; overflow: hidden; margin-top: .5rem; }
      .bar div { height: 100%; width: 0; background: #14b8a6; transition: width .2s; }
    </style>
  </head>
  <body>
    <div class="app">
      <div class="sidebar">
        <h1>__TITLE__</h1>
        <h3>Basemap</h3>
        <div id="basemaps"></div>
        <h3>Datasets</h3>
        <div id="datasets"></div>
      </div>
      <div id="map"></div>
    </div>
    <div class="overlay" id="loading">
      <div>Loading... <span id="points"></span></div>
      <div class="bar"><div id="progress"></div></div>
    </div>
    <script src="https://unpkg.com/maplibre-gl@4/dist/maplibre-gl.js"></script>
    <script type="module">
      const CONFIG = __CONFIG__;
      const apiKey = new URLSearchParams(window.location.search).get("api_key");
      // EventSource cannot send headers, so streams carry the key in the query.
      const streamUrl = (path) => apiKey ? path + "?api_key=" + encodeURIComponent(apiKey) : path;
      const keyHeaders = apiKey ? { "X-API-Key": apiKey } : {};
      const post = (path, body, method) => fetch(path, {
        method: method || "POST",
        headers: { "Content-Type": "application/json", ...keyHeaders },
        body: JSON.stringify(body || {}),
      });

      const map = new maplibregl.Map({
        container: "map",
        style: CONFIG.map.style_url,
        center: CONFIG.map.center,
        zoom: CONFIG.map.zoom,
        pitch: CONFIG.map.pitch,
        maxPitch: CONFIG.map.max_pitch,
        attributionControl: false,
      });
      map.addControl(new maplibregl.NavigationControl(), "top-left");
      map.addControl(new maplibregl.AttributionControl({ customAttribution: CONFIG.map.attribution }), "bottom-right");

      function renderDatasets(rows) {
        const root = document.getElementById("datasets");
        root.innerHTML = "";
        rows.forEach((row) => {
          const label = document.createElement("label");
          const box = document.createElement("input");
          box.type = "checkbox";
          box.checked = row.active;
          box.onchange = () => post("/v1/selection/toggle", { dataset_id: row.id });
          label.appendChild(box);
          label.appendChild(document.createTextNode(" " + row.name));
          root.appendChild(label);
        });
      }

      function renderBasemaps(current) {
        const root = document.getElementById("basemaps");
        root.innerHTML = "";
        Object.keys(CONFIG.map.basemaps).forEach((name) => {
          const button = document.createElement("button");
          button.textContent = name;
          button.className = name === current ? "active" : "";
          button.onclick = () => post("/v1/map/basemap", { basemap: name }, "PUT");
          root.appendChild(button);
        });
      }

      function renderLoading(view) {
        document.getElementById("loading").className = view.is_loading ? "overlay visible" : "overlay";
        document.getElementById("progress").style.width = (view.progress_percent || 0) + "%";
        document.getElementById("points").textContent = view.points_loaded_label ? view.points_loaded_label + " points processed" : "";
      }

      async function refreshDatasets() {
        const response = await fetch("/v1/datasets", { headers: keyHeaders });
        if (response.ok) renderDatasets(await response.json());
      }

      renderDatasets(CONFIG.datasets);
      renderBasemaps(CONFIG.map.basemap);

      const events = new EventSource(streamUrl("/v1/events"));
      [
        "selection.changed",
        "pointcloud.loaded",
        "pointcloud.unloaded",
        "pointcloud.stale_unloaded",
        "pointcloud.load_failed",
        "control.reset",
      ].forEach((type) => events.addEventListener(type, refreshDatasets));
      events.addEventListener("loading.changed", (msg) => renderLoading(JSON.parse(msg.data).payload));
      events.addEventListener("basemap.changed", (msg) => {
        const payload = JSON.parse(msg.data).payload;
        map.setStyle(payload.style_url);
        renderBasemaps(payload.basemap);
      });

      if (CONFIG.backend === "bridge") {
        const { LidarControl } = await import("https://esm.sh/maplibre-gl-lidar");
        map.on("load", () => {
          const control = new LidarControl({
            title: CONFIG.title,
            pointSize: CONFIG.map.options.point_size,
            colorScheme: CONFIG.map.options.color_scheme,
            usePercentile: CONFIG.map.options.use_percentile,
          });
          map.addControl(control, "top-right");

          const reportState = () => {
            const state = typeof control.getState === "function" ? control.getState() : {};
            post("/v1/control/state", {
              loading: !!state.loading,
              streaming_active: !!state.streamingActive,
              streaming_progress: state.streamingProgress ? {
                loaded_points: state.streamingProgress.loadedPoints || 0,
                is_loading: !!state.streamingProgress.isLoading,
              } : null,
            });
          };
          if (typeof control.on === "function") control.on("statechange", reportState);

          const commands = new EventSource(streamUrl("/v1/control/commands"));
          commands.addEventListener("load", async (msg) => {
            const command = JSON.parse(msg.data);
            try {
              const info = await control.loadPointCloud(command.source);
              await post("/v1/control/loads/" + command.request_id, { resource_id: String(info.id) });
            } catch (err) {
              await post("/v1/control/loads/" + command.request_id, { error: String(err) });
            }
          });
          commands.addEventListener("unload", (msg) => {
            control.unloadPointCloud(JSON.parse(msg.data).resource_id);
          });
          // Another tab took over the control; stop reconnecting.
          commands.addEventListener("superseded", () => commands.close());
          post("/v1/control/ready");
        });
      }
    </script>
  </body>
</html>
"""


def render_viewer_page(
    *,
    title: str,
    backend: str,
    map_config: MapConfig,
    datasets: list[DatasetStatus],
) -> str:
    config = {
        "title": title,
        "backend": backend,
        "map": map_config.model_dump(mode="json"),
        "datasets": [item.model_dump(mode="json") for item in datasets],
    }
    # Keep "</script>" in dataset names from closing the script element.
    payload = json.dumps(config).replace("</", "<\\/")
    return VIEWER_PAGE.replace("__TITLE__", html.escape(title)).replace("__CONFIG__", payload)
