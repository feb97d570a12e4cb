"""
Geodata provider clients — async httpx wrappers around the ArcGIS-style
services the scorers consume.

Submodules:
  base        — ProviderClient (timeout + bounded fixed-delay retry), ProviderError
  auth        — TokenProvider protocol, ArcGISTokenProvider, StaticTokenProvider
  enrichment  — population estimate per polygon
  places      — category-id lookup and within-extent place search
  hazard      — flood / landslide polygon intersection (projected CRS)
  landuse     — land-use attributes intersecting a polygon
  facilities  — facility points by polygon, falling back to a buffered point

Credential placement (.env, gitignored):
  ARCGIS_USERNAME, ARCGIS_PASSWORD, ARCGIS_API_KEY
"""
