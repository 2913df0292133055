from mealprep import create_app

# The application factory returns the configured app instance
app = create_app()

# Local development only; production serves `wsgi:app` through a WSGI server
if __name__ == '__main__':
    app.run(debug=True)
