"""Route handlers for the landing page, collections, features, EDR, styles, processes and search."""